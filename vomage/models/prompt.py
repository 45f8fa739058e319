"""Prompt and situational context models."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

ImageStyle = Literal["abstract", "realistic", "artistic", "minimalist", "dreamy"]

TimeOfDay = Literal["morning", "afternoon", "evening", "night"]


class SituationalContext(BaseModel):
    """Where and when the clip was recorded, as reported by the client."""

    time_of_day: Optional[TimeOfDay] = None
    weather: Optional[str] = None
    location: Optional[str] = None
    captured_at: Optional[datetime] = None

    @field_validator("weather", "location")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat blank strings as absent."""
        if v is None or not v.strip():
            return None
        return v.strip()


class Prompt(BaseModel):
    """Image prompt synthesized from a transcript."""

    final_text: str = Field(min_length=1)
    core_visual_phrase: str = Field(min_length=1)
    style: ImageStyle = "abstract"
    verified: bool = False
    rule_name: Optional[str] = None

    def contains(self, transcript_text: str) -> bool:
        """Faithfulness check: the final text carries the transcript verbatim."""
        return transcript_text in self.final_text
