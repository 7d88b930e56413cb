#!/usr/bin/env python3
"""Run script for strictpm."""

import os

import uvicorn
from dotenv import load_dotenv

load_dotenv()

if __name__ == "__main__":
    uvicorn.run(
        "strictpm.api.app:app",
        host=os.getenv("STRICTPM_HOST", "127.0.0.1"),
        port=int(os.getenv("STRICTPM_PORT", "8000")),
        reload=os.getenv("DEBUG", "False").lower() == "true",
    )
