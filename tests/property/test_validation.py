"""Property-based tests for data model validation.

Feature: vomage
Property 12: Data Model Validation
"""

import pytest
from hypothesis import given, settings, strategies as st
from pydantic import ValidationError

from vomage.models.audio import AudioRef
from vomage.models.image import ImageArtifact, ImageDimensions
from vomage.models.job import Job, StageResult
from vomage.models.prompt import Prompt, SituationalContext
from vomage.models.sentiment import MOODS, MoodDistribution, SentimentResult
from vomage.models.transcript import Transcript

# Strategies for valid values
non_empty_text = st.text(min_size=1, max_size=200).filter(lambda x: x.strip())
valid_moods = st.sampled_from(MOODS)
raw_scores = st.floats(min_value=0, max_value=1000, allow_nan=False)

# Strategies for invalid values
empty_or_whitespace = st.sampled_from(["", " ", "  ", "\t", "\n", "   \t\n  "])
invalid_moods = st.text(min_size=1, max_size=30).filter(lambda x: x not in MOODS)


class TestProperty12DataModelValidation:
    """Property 12: Data Model Validation.

    *For any* attempt to build a model with invalid values (blank transcript,
    unknown mood, distribution not summing to 1, out-of-range confidence),
    Pydantic SHALL raise a ValidationError.
    """

    @settings(max_examples=50)
    @given(empty_value=empty_or_whitespace)
    def test_transcript_rejects_blank_text(self, empty_value: str) -> None:
        with pytest.raises(ValidationError):
            Transcript(text=empty_value)

    @given(text=non_empty_text)
    def test_transcript_strips_text(self, text: str) -> None:
        assert Transcript(text=text).text == text.strip()

    @given(mood=invalid_moods)
    def test_sentiment_rejects_unknown_mood(self, mood: str) -> None:
        with pytest.raises(ValidationError):
            SentimentResult(mood=mood, confidence=0.5, distribution=MoodDistribution.uniform())

    @given(confidence=st.one_of(st.floats(max_value=-0.001), st.floats(min_value=1.001)).filter(lambda f: f == f))
    def test_confidence_out_of_range(self, confidence: float) -> None:
        with pytest.raises(ValidationError):
            SentimentResult(mood="calm", confidence=confidence, distribution=MoodDistribution.uniform())

    def test_distribution_must_sum_to_one(self) -> None:
        with pytest.raises(ValidationError):
            MoodDistribution(positive=0.5, negative=0.5, neutral=0.5)

    @settings(max_examples=200)
    @given(positive=raw_scores, negative=raw_scores, neutral=raw_scores)
    def test_from_scores_normalizes(self, positive: float, negative: float, neutral: float) -> None:
        distribution = MoodDistribution.from_scores(positive, negative, neutral)
        total = distribution.positive + distribution.negative + distribution.neutral
        assert abs(total - 1.0) <= 1e-3

    def test_from_scores_all_zero_is_uniform(self) -> None:
        assert MoodDistribution.from_scores(0, 0, 0) == MoodDistribution.uniform()

    def test_neutral_default(self) -> None:
        default = SentimentResult.neutral_default()
        assert default.mood == "neutral"
        assert default.confidence == 0.0
        assert (default.distribution.positive, default.distribution.negative, default.distribution.neutral) == (
            0.33,
            0.33,
            0.34,
        )

    @given(mood=valid_moods)
    def test_every_mood_accepted(self, mood: str) -> None:
        assert SentimentResult(mood=mood, confidence=1, distribution=MoodDistribution.uniform()).mood == mood

    def test_audio_ref_requires_full_digest(self) -> None:
        with pytest.raises(ValidationError):
            AudioRef(ref="mem://a", size_bytes=1, duration_seconds=1, sha256="abc")

    @pytest.mark.parametrize("size", [0, 4096])
    def test_image_dimensions_bounds(self, size: int) -> None:
        with pytest.raises(ValidationError):
            ImageDimensions(width=size, height=512)

    def test_image_artifact_requires_known_producer(self) -> None:
        with pytest.raises(ValidationError):
            ImageArtifact(reference="mem://x", prompt="p", produced_by="backup", provider="x")

    def test_stage_result_rejects_unknown_status(self) -> None:
        with pytest.raises(ValidationError):
            StageResult(stage="transcription", status="skipped", provider="x")

    def test_stage_result_settled(self) -> None:
        assert StageResult(stage="sentiment", status="failed_fallback", provider="x").settled
        assert not StageResult(stage="sentiment", status="failed_retryable", provider="x").settled

    def test_context_blank_strings_become_none(self) -> None:
        context = SituationalContext(weather="  ", location=" Lhasa ")
        assert context.weather is None
        assert context.location == "Lhasa"

    def test_context_rejects_unknown_time_of_day(self) -> None:
        with pytest.raises(ValidationError):
            SituationalContext(time_of_day="noon")

    @given(text=non_empty_text)
    def test_prompt_contains(self, text: str) -> None:
        prompt = Prompt(final_text=f"{text}, abstract", core_visual_phrase="abstract")
        assert prompt.contains(text)

    def test_job_round_trips_through_json(self) -> None:
        job = Job(
            job_id="job-1",
            input_audio=AudioRef(ref="mem://a", size_bytes=1, duration_seconds=1, sha256="f" * 64),
            stage_results=[StageResult(stage="transcription", status="succeeded", provider="x")],
        )
        assert Job.model_validate(job.model_dump(mode="json")) == job
