"""Generated image models."""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from vomage.models.prompt import ImageStyle

ProducedBy = Literal["primary", "fallback"]


class ImageDimensions(BaseModel):
    """Pixel size requested from the renderer."""

    width: int = Field(default=512, ge=64, le=2048)
    height: int = Field(default=512, ge=64, le=2048)


class ImageArtifact(BaseModel):
    """Final image produced for a job."""

    reference: str = Field(min_length=1)
    prompt: str = Field(min_length=1)
    style: ImageStyle = "abstract"
    dimensions: ImageDimensions = Field(default_factory=ImageDimensions)
    produced_by: ProducedBy
    provider: str
    content_type: str = "image/png"
    archetype: Optional[str] = None
