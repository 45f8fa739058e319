"""Audio reference model."""

from pydantic import BaseModel, Field


class AudioRef(BaseModel):
    """Opaque handle to validated audio held in object storage."""

    ref: str = Field(min_length=1)
    mime_type: str = ""
    size_bytes: int = Field(ge=1)
    duration_seconds: float = Field(ge=0)
    sha256: str = Field(min_length=64, max_length=64)
