"""Ingest gate: validates uploaded audio before any provider is billed."""

import hashlib
import io
import logging
import wave
from typing import Iterable, Optional

from vomage.models.audio import AudioRef
from vomage.providers.storage import ObjectStore
from vomage.utils.errors import IngestValidationError, StorageError

logger = logging.getLogger(__name__)

# Typical recording bitrates in kbps, used to estimate clip length.
BITRATES_KBPS: dict[str, int] = {
    "audio/webm": 64,
    "audio/mp4": 128,
    "audio/mpeg": 128,
    "audio/wav": 1411,
    "audio/x-wav": 1411,
    "audio/ogg": 64,
}
DEFAULT_BITRATE_KBPS = 64


def base_mime_type(mime_type: Optional[str]) -> str:
    """Lowercased type/subtype with parameters such as codecs removed."""
    if not mime_type:
        return ""
    return mime_type.split(";")[0].strip().lower()


def mime_type_allowed(declared: Optional[str], allowed: Iterable[str]) -> bool:
    """
    Check a declared MIME type against the permitted set.

    Matches exactly, by wildcard subtype (``audio/*``), or by base type with
    parameters ignored. An empty declaration is tolerated.
    """
    if not declared or not declared.strip():
        return True

    exact = declared.strip().lower()
    base = base_mime_type(declared)
    major = base.split("/")[0]

    for pattern in allowed:
        pattern = pattern.strip().lower()
        if pattern in (exact, base):
            return True
        if pattern.endswith("/*") and pattern[:-2] == major:
            return True
    return False


def estimate_duration(audio: bytes, mime_type: Optional[str]) -> float:
    """
    Estimate clip duration in seconds.

    WAV payloads are measured from their header; other formats use a typical
    bitrate for the container.
    """
    base = base_mime_type(mime_type)
    if base in ("audio/wav", "audio/x-wav") or audio[:4] == b"RIFF":
        try:
            with wave.open(io.BytesIO(audio)) as clip:
                rate = clip.getframerate()
                if rate > 0:
                    return clip.getnframes() / float(rate)
        except (wave.Error, EOFError):
            logger.debug("WAV header unreadable, falling back to bitrate estimate")

    bitrate = BITRATES_KBPS.get(base, DEFAULT_BITRATE_KBPS)
    size_kb = len(audio) / 1024
    return max(1.0, round(size_kb * 8 / bitrate))


class IngestGate:
    """Validates uploads and writes accepted audio to object storage."""

    def __init__(
        self,
        store: ObjectStore,
        max_bytes: int,
        allowed_types: Iterable[str],
        min_seconds: float = 1.0,
        max_seconds: float = 300.0,
    ) -> None:
        """
        Initialize the IngestGate.

        Args:
            store: Object storage for accepted audio
            max_bytes: Largest accepted payload
            allowed_types: Permitted MIME patterns
            min_seconds: Shortest accepted clip
            max_seconds: Longest accepted clip
        """
        self.store = store
        self.max_bytes = max_bytes
        self.allowed_types = list(allowed_types)
        self.min_seconds = min_seconds
        self.max_seconds = max_seconds

    def check(self, audio: bytes, declared_mime_type: Optional[str]) -> float:
        """
        Run every validation rule without side effects.

        Returns:
            Estimated duration in seconds

        Raises:
            IngestValidationError: If any rule rejects the payload
        """
        if not audio:
            raise IngestValidationError("EMPTY_AUDIO", "Audio payload is empty")

        if len(audio) > self.max_bytes:
            raise IngestValidationError(
                "AUDIO_TOO_LARGE",
                f"Audio payload is {len(audio)} bytes, limit is {self.max_bytes}",
            )

        if not mime_type_allowed(declared_mime_type, self.allowed_types):
            raise IngestValidationError(
                "UNSUPPORTED_FORMAT", f"Unsupported audio format: {declared_mime_type}"
            )

        duration = estimate_duration(audio, declared_mime_type)
        if duration < self.min_seconds:
            raise IngestValidationError(
                "AUDIO_TOO_SHORT", f"Audio must be at least {self.min_seconds:g} seconds"
            )
        if duration > self.max_seconds:
            raise IngestValidationError(
                "AUDIO_TOO_LONG", f"Audio must not exceed {self.max_seconds:g} seconds"
            )
        return duration

    async def validate(self, audio: bytes, declared_mime_type: Optional[str]) -> AudioRef:
        """
        Validate an upload and persist it.

        Args:
            audio: Raw uploaded bytes
            declared_mime_type: MIME type reported by the client, may be empty

        Returns:
            AudioRef pointing at the stored audio

        Raises:
            IngestValidationError: If the payload is rejected
            StorageError: If the accepted payload cannot be stored
        """
        duration = self.check(audio, declared_mime_type)
        mime_type = (declared_mime_type or "").strip()

        try:
            ref = await self.store.put(audio, mime_type or "application/octet-stream", prefix="audio")
        except StorageError:
            logger.error(f"Failed to store {len(audio)} bytes of accepted audio")
            raise

        logger.info(f"Accepted audio {ref}: {len(audio)} bytes, ~{duration:.1f}s, {mime_type or 'no mime'}")
        return AudioRef(
            ref=ref,
            mime_type=mime_type,
            size_bytes=len(audio),
            duration_seconds=duration,
            sha256=hashlib.sha256(audio).hexdigest(),
        )
