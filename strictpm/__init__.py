"""strictpm: personal task planning with an AI project-manager assistant."""

__version__ = "0.1.0"
