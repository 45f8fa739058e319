"""Image generation stage: primary provider with a procedural fallback."""

import asyncio
import logging

from vomage.models.image import ImageArtifact, ImageDimensions
from vomage.models.prompt import Prompt
from vomage.providers.base import ImageGenerationProvider
from vomage.providers.storage import ObjectStore
from vomage.services.procedural import render_procedural
from vomage.utils.errors import ProviderTimeoutError

logger = logging.getLogger(__name__)

FALLBACK_PROVIDER = "procedural-svg"


class ImageGenerationStage:
    """Renders a verified prompt into an ImageArtifact."""

    def __init__(
        self,
        provider: ImageGenerationProvider,
        store: ObjectStore,
        semaphore: asyncio.Semaphore,
        timeout: float = 60.0,
    ) -> None:
        """
        Initialize the ImageGenerationStage.

        Args:
            provider: Primary generative image adapter
            store: Object storage for rendered images
            semaphore: Limits concurrent calls to the provider
            timeout: Hard limit for one render call
        """
        self.provider = provider
        self.store = store
        self.semaphore = semaphore
        self.timeout = timeout

    async def render(self, prompt: Prompt, dimensions: ImageDimensions, job_id: str) -> ImageArtifact:
        """
        Render through the primary provider and archive the bytes.

        Raises:
            ProviderError: If the provider fails or exceeds the timeout
            StorageError: If the image cannot be archived
        """
        async with self.semaphore:
            try:
                result = await asyncio.wait_for(
                    self.provider.render(prompt.final_text, dimensions), timeout=self.timeout
                )
            except asyncio.TimeoutError as e:
                raise ProviderTimeoutError(self.provider.name, f"render exceeded {self.timeout:g}s") from e
        image = result.unwrap()

        reference = await self.store.put(image, "image/png", prefix=f"images/{job_id}")
        logger.info(f"Stored primary image for job {job_id} at {reference}")
        return ImageArtifact(
            reference=self.store.public_url(reference),
            prompt=prompt.final_text,
            style=prompt.style,
            dimensions=dimensions,
            produced_by="primary",
            provider=self.provider.name,
            content_type="image/png",
        )

    def fallback(self, prompt: Prompt, dimensions: ImageDimensions) -> ImageArtifact:
        """Render the prompt procedurally; never fails."""
        image = render_procedural(prompt.final_text, dimensions.width, dimensions.height)
        logger.info(f"Procedural fallback rendered archetype {image.archetype} (keyword {image.keyword!r})")
        return ImageArtifact(
            reference=image.data_uri,
            prompt=prompt.final_text,
            style=prompt.style,
            dimensions=dimensions,
            produced_by="fallback",
            provider=FALLBACK_PROVIDER,
            content_type="image/svg+xml",
            archetype=image.archetype,
        )
