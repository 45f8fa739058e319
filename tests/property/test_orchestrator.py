"""Property-based tests for the pipeline orchestrator.

Feature: vomage
Property 3: Pipeline Termination
Property 4: Stage Degradation
Property 5: Faithful Prompts Reach The Image Stage
"""

import asyncio
from unittest.mock import patch

import pytest
from hypothesis import given, settings, strategies as st
from pydantic_ai.exceptions import UserError

from conftest import (
    FakeImageProvider,
    FakeSentimentProvider,
    FakeTranscriptionProvider,
    build_pipeline,
    fast_policies,
    make_wav,
)
from vomage.models.job import StageResult
from vomage.models.transcript import Transcript
from vomage.providers.sentiment import AgentSentimentProvider
from vomage.services.orchestrator import job_result
from vomage.services.prompt_synthesizer import PromptSynthesizer
from vomage.utils.errors import ProviderTimeoutError


async def no_sleep(delay: float) -> None:
    pass


async def submit_and_run(orchestrator, store, gate, style: str = "abstract") -> str:
    audio = await gate.validate(make_wav(2.0), "audio/wav")
    job_id = await store.create(audio, style=style)
    with patch("vomage.services.orchestrator.asyncio.sleep", no_sleep):
        await orchestrator.run(job_id)
    return job_id


class TestProperty3PipelineTermination:
    """Property 3: Pipeline Termination.

    *For any* job, the orchestrator SHALL reach a terminal state. Only an
    exhausted transcription stage (or an internal error) fails the job.
    """

    @pytest.mark.asyncio
    async def test_happy_path_succeeds_with_primary_image(self) -> None:
        orchestrator, store, objects, gate = build_pipeline()
        job_id = await submit_and_run(orchestrator, store, gate)

        job = await store.get(job_id)
        assert job.state == "succeeded"
        assert job.progress.percent == 100
        assert [r.stage for r in job.stage_results] == [
            "transcription",
            "sentiment",
            "prompt_synthesis",
            "image_generation",
        ]
        assert all(r.status == "succeeded" for r in job.stage_results)

        result = job_result(job)
        assert result is not None
        assert result["image"]["produced_by"] == "primary"
        assert result["image"]["reference"].startswith("mem://images/")
        assert "我看到了一座小木屋" in result["prompt"]["final_text"]

    @pytest.mark.asyncio
    async def test_always_timing_out_transcription_fails_after_max_attempts(self) -> None:
        sentiment = FakeSentimentProvider()
        image = FakeImageProvider()
        orchestrator, store, _, gate = build_pipeline(
            transcription=FakeTranscriptionProvider(poll_state="in_progress"),
            sentiment=sentiment,
            image=image,
            policies=fast_policies(transcription_attempts=3),
        )

        job_id = await submit_and_run(orchestrator, store, gate)
        job = await store.get(job_id)

        assert job.state == "failed"
        assert job.reason == "TranscriptionUnavailable"
        assert job.progress.percent == 0
        assert len(job.stage_results) == 3
        assert all(r.stage == "transcription" for r in job.stage_results)
        assert [r.status for r in job.stage_results] == [
            "failed_retryable",
            "failed_retryable",
            "failed_fatal",
        ]
        assert [r.attempt for r in job.stage_results] == [1, 2, 3]
        assert sentiment.calls == 0
        assert image.prompts == []

    @settings(max_examples=10, deadline=None)
    @given(max_attempts=st.integers(min_value=1, max_value=5))
    def test_submit_failure_yields_exactly_max_attempts_results(self, max_attempts: int) -> None:
        """Exactly max_attempts StageResults are recorded, none for later stages."""
        transcription = FakeTranscriptionProvider(fail_with=ProviderTimeoutError("fake", "no answer"))
        orchestrator, store, _, gate = build_pipeline(
            transcription=transcription,
            policies=fast_policies(transcription_attempts=max_attempts),
        )

        async def run_test():
            job_id = await submit_and_run(orchestrator, store, gate)
            return await store.get(job_id)

        job = asyncio.run(run_test())
        assert job.state == "failed"
        assert len(job.stage_results) == max_attempts
        assert transcription.submissions == max_attempts
        assert job.stage_results[-1].status == "failed_fatal"

    @pytest.mark.asyncio
    async def test_unexpected_exception_fails_with_internal_error(self) -> None:
        class BrokenSynthesizer(PromptSynthesizer):
            def synthesize(self, *args, **kwargs):
                raise RuntimeError("rule table corrupted")

        orchestrator, store, _, gate = build_pipeline()
        orchestrator.synthesizer = BrokenSynthesizer()

        job_id = await submit_and_run(orchestrator, store, gate)
        job = await store.get(job_id)

        assert job.state == "failed"
        assert job.reason == "InternalError"
        assert "rule table corrupted" in job.error_message
        assert job.progress.stage == "failed"

    @pytest.mark.asyncio
    async def test_running_a_terminal_job_is_a_no_op(self) -> None:
        orchestrator, store, _, gate = build_pipeline()
        job_id = await submit_and_run(orchestrator, store, gate)
        before = await store.get(job_id)

        await orchestrator.run(job_id)
        after = await store.get(job_id)
        assert after == before

    @pytest.mark.asyncio
    async def test_unknown_job_does_not_raise(self) -> None:
        orchestrator, _, _, _ = build_pipeline()
        await orchestrator.run("does-not-exist")


class TestProperty4StageDegradation:
    """Property 4: Stage Degradation.

    *For any* failure of an optional stage, the job SHALL still succeed, with
    the stage's fallback recorded as failed_fallback.
    """

    @pytest.mark.asyncio
    async def test_sentiment_failure_degrades_to_neutral(self) -> None:
        sentiment = FakeSentimentProvider(fail=True)
        orchestrator, store, _, gate = build_pipeline(sentiment=sentiment)

        job_id = await submit_and_run(orchestrator, store, gate)
        job = await store.get(job_id)

        assert job.state == "succeeded"
        assert sentiment.calls == 2
        results = job.results_for("sentiment")
        assert [r.status for r in results] == ["failed_retryable", "failed_fallback"]
        fallback = job.authoritative("sentiment")
        assert fallback.provider == "neutral-default"
        assert fallback.output["mood"] == "neutral"
        assert fallback.output["confidence"] == 0.0
        assert fallback.output["distribution"] == {"positive": 0.33, "negative": 0.33, "neutral": 0.34}

    @pytest.mark.asyncio
    async def test_image_failure_falls_back_to_procedural(self) -> None:
        orchestrator, store, _, gate = build_pipeline(
            transcription=FakeTranscriptionProvider(text="今天的蓝天白云"),
            image=FakeImageProvider(fail=True),
        )
        job_id = await submit_and_run(orchestrator, store, gate)
        job = await store.get(job_id)

        assert job.state == "succeeded"
        image = job_result(job)["image"]
        assert image["produced_by"] == "fallback"
        assert image["provider"] == "procedural-svg"
        assert image["archetype"] == "sky"
        assert image["reference"].startswith("data:image/svg+xml;base64,")
        assert "blue sky" in image["prompt"]
        assert job.authoritative("image_generation").status == "failed_fallback"

    @pytest.mark.asyncio
    async def test_resume_skips_completed_stages(self) -> None:
        transcription = FakeTranscriptionProvider()
        orchestrator, store, _, gate = build_pipeline(transcription=transcription)

        audio = await gate.validate(make_wav(2.0), "audio/wav")
        job_id = await store.create(audio)
        transcript = Transcript(text="山顶上有一面红旗", confidence=0.88)
        await store.append_stage_result(
            job_id,
            StageResult(
                stage="transcription",
                status="succeeded",
                provider="fake-transcribe",
                output=transcript.model_dump(mode="json"),
                confidence=0.88,
            ),
        )

        with patch("vomage.services.orchestrator.asyncio.sleep", no_sleep):
            resumed = await orchestrator.recover()
            await asyncio.gather(*list(orchestrator._tasks))

        job = await store.get(job_id)
        assert resumed == 1
        assert transcription.submissions == 0
        assert job.state == "succeeded"
        assert len(job.results_for("transcription")) == 1
        assert "山顶上有一面红旗" in job_result(job)["prompt"]["final_text"]


class TestProperty5FaithfulPromptsReachImageStage:
    """Property 5: Faithful Prompts Reach The Image Stage.

    *For any* transcript, the prompt sent to the image provider and recorded
    on a succeeded job SHALL contain the transcript text verbatim.
    """

    @settings(max_examples=25, deadline=None)
    @given(text=st.text(min_size=1, max_size=60).filter(lambda t: t.strip()))
    def test_final_text_contains_transcript(self, text: str) -> None:
        image = FakeImageProvider()
        orchestrator, store, _, gate = build_pipeline(
            transcription=FakeTranscriptionProvider(text=text),
            image=image,
        )

        async def run_test():
            job_id = await submit_and_run(orchestrator, store, gate)
            return await store.get(job_id)

        job = asyncio.run(run_test())
        stripped = text.strip()
        assert job.state == "succeeded"
        assert stripped in job_result(job)["prompt"]["final_text"]
        assert len(image.prompts) == 1
        assert stripped in image.prompts[0]


class BrokenSentimentProvider(FakeSentimentProvider):
    """Raises something that is not a provider error."""

    async def classify(self, text: str):
        self.calls += 1
        raise RuntimeError("tokenizer table missing")


class BrokenImageProvider(FakeImageProvider):
    async def render(self, prompt, dimensions):
        self.prompts.append(prompt)
        raise KeyError("images")


class TestOptionalStagesAbsorbUnexpectedErrors:
    """Optional stages fall back on any error; only transcription can fail a job."""

    @pytest.mark.asyncio
    async def test_misconfigured_mood_model_degrades_to_neutral(self) -> None:
        def agent_factory():
            raise UserError("Unknown model: nosuchprovider:model")

        orchestrator, store, _, gate = build_pipeline(
            sentiment=AgentSentimentProvider(agent_factory, api_key="sk-test"),
        )
        job_id = await submit_and_run(orchestrator, store, gate)
        job = await store.get(job_id)

        assert job.state == "succeeded"
        assert [r.stage for r in job.stage_results] == [
            "transcription",
            "sentiment",
            "sentiment",
            "prompt_synthesis",
            "image_generation",
        ]
        fallback = job.authoritative("sentiment")
        assert fallback.status == "failed_fallback"
        assert fallback.provider == "neutral-default"
        assert "Unknown model" in fallback.error

    @pytest.mark.asyncio
    async def test_unexpected_sentiment_error_degrades_without_retry(self) -> None:
        sentiment = BrokenSentimentProvider()
        orchestrator, store, _, gate = build_pipeline(sentiment=sentiment)

        job_id = await submit_and_run(orchestrator, store, gate)
        job = await store.get(job_id)

        assert job.state == "succeeded"
        assert sentiment.calls == 1
        results = job.results_for("sentiment")
        assert [(r.status, r.attempt) for r in results] == [("failed_fallback", 1)]
        assert "RuntimeError: tokenizer table missing" in results[0].error
        assert job_result(job)["sentiment"]["mood"] == "neutral"

    @pytest.mark.asyncio
    async def test_unexpected_image_error_falls_back_to_procedural(self) -> None:
        orchestrator, store, _, gate = build_pipeline(image=BrokenImageProvider())

        job_id = await submit_and_run(orchestrator, store, gate)
        job = await store.get(job_id)

        assert job.state == "succeeded"
        assert job_result(job)["image"]["produced_by"] == "fallback"
        assert job.authoritative("image_generation").error.startswith("KeyError")

    @pytest.mark.asyncio
    async def test_unexpected_transcription_error_still_fails_the_job(self) -> None:
        class ExplodingTranscription(FakeTranscriptionProvider):
            async def submit(self, audio, mime_type, language):
                raise RuntimeError("codec crashed")

        orchestrator, store, _, gate = build_pipeline(transcription=ExplodingTranscription())
        job_id = await submit_and_run(orchestrator, store, gate)
        job = await store.get(job_id)

        assert job.state == "failed"
        assert job.reason == "InternalError"
        assert job.results_for("sentiment") == []


class TestActiveRunCount:
    """Every running job is counted, however it was started."""

    @pytest.mark.asyncio
    async def test_direct_run_is_counted_while_running(self) -> None:
        seen: list[int] = []

        class ObservingSentimentProvider(FakeSentimentProvider):
            async def classify(self, text: str):
                seen.append(orchestrator.active)
                return await super().classify(text)

        orchestrator, store, _, gate = build_pipeline(sentiment=ObservingSentimentProvider())
        assert orchestrator.active == 0

        job_id = await submit_and_run(orchestrator, store, gate)

        assert seen == [1]
        assert orchestrator.active == 0
        assert (await store.get(job_id)).state == "succeeded"

    @pytest.mark.asyncio
    async def test_submitted_runs_are_counted(self) -> None:
        release = asyncio.Event()

        class BlockingSentimentProvider(FakeSentimentProvider):
            async def classify(self, text: str):
                await release.wait()
                return await super().classify(text)

        orchestrator, store, _, gate = build_pipeline(sentiment=BlockingSentimentProvider())
        job_ids = [await store.create(await gate.validate(make_wav(2.0), "audio/wav")) for _ in range(3)]

        tasks = [orchestrator.submit(job_id) for job_id in job_ids]
        while orchestrator.active < 3:
            await asyncio.sleep(0)
        release.set()
        await asyncio.gather(*tasks)

        assert orchestrator.active == 0
