"""Transcript models."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class TranscriptSegment(BaseModel):
    """Timed word or phrase kept for audit."""

    text: str
    start_time: float = Field(default=0.0, ge=0)
    end_time: float = Field(default=0.0, ge=0)
    confidence: float = Field(default=0.0, ge=0, le=1)


class Transcript(BaseModel):
    """Normalized speech-to-text output."""

    text: str = Field(min_length=1)
    confidence: float = Field(default=0.0, ge=0, le=1)
    language: Optional[str] = None
    segments: list[TranscriptSegment] = Field(default_factory=list)

    @field_validator("text")
    @classmethod
    def text_not_whitespace(cls, v: str) -> str:
        """Strip surrounding whitespace and reject blank transcripts."""
        v = v.strip()
        if not v:
            raise ValueError("text cannot be only whitespace")
        return v
