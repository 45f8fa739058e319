"""HTTP adapter for a submit/poll/fetch speech-to-text service."""

import logging
from typing import Any, Optional

import httpx

from vomage.models.transcript import Transcript, TranscriptSegment
from vomage.providers.base import (
    PollStatus,
    ProviderResult,
    TranscriptionProvider,
    capture,
    check_response,
    classify_http_error,
)
from vomage.utils.errors import ProviderResponseError

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES: tuple[str, ...] = ("zh-CN", "zh-TW", "en-US", "en-GB", "ja-JP", "ko-KR")
DEFAULT_LANGUAGE = "zh-CN"
DEFAULT_ITEM_CONFIDENCE = 0.8

# Provider status strings (Transcribe-style upper case included) to poll states.
_STATUS_MAP = {
    "queued": "submitted",
    "submitted": "submitted",
    "in_progress": "in_progress",
    "processing": "in_progress",
    "completed": "completed",
    "failed": "failed",
}


def map_language_code(language: Optional[str]) -> str:
    """Map a requested language tag onto the supported set."""
    if language in SUPPORTED_LANGUAGES:
        return language  # type: ignore[return-value]
    return DEFAULT_LANGUAGE


def parse_poll_status(payload: dict[str, Any]) -> PollStatus:
    """
    Normalize a job status document.

    Accepts ``{"status": ...}`` or ``{"TranscriptionJobStatus": ...}``.
    """
    raw = payload.get("status") or payload.get("TranscriptionJobStatus") or ""
    state = _STATUS_MAP.get(str(raw).lower())
    if state is None:
        raise ProviderResponseError(HttpTranscriptionProvider.name, f"Unknown job status: {raw!r}")
    reason = payload.get("failure_reason") or payload.get("FailureReason")
    return PollStatus(state=state, failure_reason=reason)  # type: ignore[arg-type]


def parse_transcript_document(document: dict[str, Any], language: Optional[str] = None) -> Transcript:
    """
    Normalize a Transcribe-style result document into a Transcript.

    Args:
        document: Result JSON with ``results.transcripts`` and ``results.items``
        language: Language tag to record when the document carries none

    Returns:
        Transcript with mean item confidence and pronunciation segments

    Raises:
        ProviderResponseError: If no transcript text is present
    """
    results = document.get("results") or {}
    transcripts = results.get("transcripts") or []
    text = ""
    if transcripts and isinstance(transcripts[0], dict):
        text = str(transcripts[0].get("transcript") or "")
    if not text.strip():
        raise ProviderResponseError(HttpTranscriptionProvider.name, "Transcript document contains no text")

    items = results.get("items") or []
    scores: list[float] = []
    segments: list[TranscriptSegment] = []
    for item in items:
        alternatives = item.get("alternatives") or [{}]
        best = alternatives[0]
        if best.get("confidence") not in (None, ""):
            scores.append(float(best["confidence"]))
        if item.get("type") == "pronunciation":
            segments.append(
                TranscriptSegment(
                    text=str(best.get("content", "")),
                    start_time=float(item.get("start_time") or 0),
                    end_time=float(item.get("end_time") or 0),
                    confidence=float(best.get("confidence") or DEFAULT_ITEM_CONFIDENCE),
                )
            )

    confidence = sum(scores) / len(scores) if scores else DEFAULT_ITEM_CONFIDENCE
    return Transcript(
        text=text,
        confidence=min(max(confidence, 0.0), 1.0),
        language=document.get("language_code") or document.get("LanguageCode") or language,
        segments=segments,
    )


class HttpTranscriptionProvider(TranscriptionProvider):
    """Speech-to-text REST service: POST /jobs, GET /jobs/{id}, GET /jobs/{id}/transcript."""

    name = "http-transcribe"

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        api_key: str = "",
        request_timeout: float = 30.0,
    ) -> None:
        """
        Initialize the provider.

        Args:
            client: Shared HTTP client created at process start
            base_url: Service root URL
            api_key: Bearer token for the service
            request_timeout: Timeout for each individual HTTP call
        """
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.request_timeout = request_timeout

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        try:
            response = await self.client.request(
                method,
                f"{self.base_url}{path}",
                headers=headers,
                timeout=self.request_timeout,
                **kwargs,
            )
        except httpx.HTTPError as e:
            raise classify_http_error(self.name, e) from e

        check_response(self.name, response)
        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderResponseError(self.name, f"Invalid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise ProviderResponseError(self.name, "Expected a JSON object")
        return payload

    async def _submit(self, audio: bytes, mime_type: str, language: str) -> str:
        payload = await self._request(
            "POST",
            "/jobs",
            content=audio,
            params={"language": map_language_code(language)},
            headers={"Content-Type": mime_type or "application/octet-stream"},
        )
        handle = payload.get("job_id") or payload.get("TranscriptionJobName")
        if not handle:
            raise ProviderResponseError(self.name, "Submit response has no job id")
        logger.info(f"Submitted transcription job {handle} ({len(audio)} bytes)")
        return str(handle)

    async def _poll(self, handle: str) -> PollStatus:
        return parse_poll_status(await self._request("GET", f"/jobs/{handle}"))

    async def _fetch(self, handle: str) -> Transcript:
        document = await self._request("GET", f"/jobs/{handle}/transcript")
        try:
            return parse_transcript_document(document)
        except (ValueError, TypeError, AttributeError) as e:
            raise ProviderResponseError(self.name, f"Malformed transcript document: {e}") from e

    async def submit(self, audio: bytes, mime_type: str, language: str) -> ProviderResult[str]:
        return await capture(self._submit(audio, mime_type, language))

    async def poll(self, handle: str) -> ProviderResult[PollStatus]:
        return await capture(self._poll(handle))

    async def fetch(self, handle: str) -> ProviderResult[Transcript]:
        return await capture(self._fetch(handle))
