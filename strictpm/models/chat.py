"""Chat transcript and news data models for strictpm."""

from enum import Enum
from pydantic import BaseModel, Field


class ChatRole(str, Enum):
    """Who wrote a transcript message."""
    USER = "user"
    MODEL = "model"


class ChatMessage(BaseModel):
    """One message in the visible chat transcript."""

    id: str = Field(..., description="Unique message identifier")
    role: ChatRole = Field(..., description="Message author")
    text: str = Field(..., description="Message text")
    is_system: bool = Field(False, description="Local system notification (e.g. tasks added)")
    timestamp: int = Field(..., description="When the message was appended (ms)")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class DailyNews(BaseModel):
    """Parsed three-line daily economic news blurb."""

    headline: str
    summary: str
    insight: str = Field("", description="Key takeaway")
