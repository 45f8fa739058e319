"""HTTP adapter for the primary text-to-image service."""

import base64
import binascii
import hashlib
import logging
from typing import Any

import httpx

from vomage.models.image import ImageDimensions
from vomage.providers.base import (
    ImageGenerationProvider,
    ProviderResult,
    capture,
    check_response,
    classify_http_error,
)
from vomage.utils.errors import ProviderResponseError

logger = logging.getLogger(__name__)

NEGATIVE_PROMPT = "low quality, blurry, distorted, ugly, bad composition, text, watermark"


class HttpImageProvider(ImageGenerationProvider):
    """Titan-style image endpoint: POST a TEXT_IMAGE task, receive base64 images."""

    name = "http-image"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_url: str,
        api_key: str = "",
        model_id: str = "amazon.titan-image-generator-v1:0",
        request_timeout: float = 60.0,
    ) -> None:
        """
        Initialize the provider.

        Args:
            client: Shared HTTP client created at process start
            api_url: Full URL of the generation endpoint
            api_key: Bearer token for the service
            model_id: Model identifier sent with each request
            request_timeout: Hard timeout for one render call
        """
        self.client = client
        self.api_url = api_url
        self.api_key = api_key
        self.model_id = model_id
        self.request_timeout = request_timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_url)

    def _build_payload(self, prompt: str, dimensions: ImageDimensions) -> dict[str, Any]:
        """
        Construct the generation request body.

        The seed is derived from the prompt so identical prompts request
        identical renders.
        """
        seed = int(hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:8], 16) % 1_000_000
        return {
            "modelId": self.model_id,
            "taskType": "TEXT_IMAGE",
            "textToImageParams": {
                "text": prompt,
                "negativeText": NEGATIVE_PROMPT,
            },
            "imageGenerationConfig": {
                "numberOfImages": 1,
                "width": dimensions.width,
                "height": dimensions.height,
                "cfgScale": 8.0,
                "seed": seed,
                "quality": "premium",
            },
        }

    def _extract_image(self, result: Any) -> bytes:
        """Pull the first base64 image out of the response."""
        if not isinstance(result, dict):
            raise ProviderResponseError(self.name, "Unexpected response format")
        images = result.get("images")
        encoded = images[0] if isinstance(images, list) and images else result.get("image")
        if not encoded or not isinstance(encoded, str):
            raise ProviderResponseError(self.name, "No image data in response")
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ProviderResponseError(self.name, f"Image data is not valid base64: {e}") from e

    async def _render(self, prompt: str, dimensions: ImageDimensions) -> bytes:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = await self.client.post(
                self.api_url,
                json=self._build_payload(prompt, dimensions),
                headers=headers,
                timeout=self.request_timeout,
            )
        except httpx.HTTPError as e:
            raise classify_http_error(self.name, e) from e

        check_response(self.name, response)
        try:
            result = response.json()
        except ValueError as e:
            raise ProviderResponseError(self.name, f"Invalid JSON: {e}") from e

        image = self._extract_image(result)
        logger.info(f"Primary image rendered: {len(image)} bytes")
        return image

    async def render(self, prompt: str, dimensions: ImageDimensions) -> ProviderResult[bytes]:
        return await capture(self._render(prompt, dimensions))
