"""Sentiment adapter backed by the pydantic-ai mood analyst."""

import logging
from typing import Any, Callable, Optional

import httpx

from vomage.agents.mood import MoodAnalysis
from vomage.models.sentiment import MoodDistribution, SentimentResult
from vomage.providers.base import ProviderResult, SentimentProvider, capture, classify_http_error
from vomage.utils.errors import ProviderResponseError, ProviderUnavailableError

logger = logging.getLogger(__name__)


def analysis_to_result(analysis: MoodAnalysis) -> SentimentResult:
    """Normalize agent output: raw polarity scores become a distribution."""
    return SentimentResult(
        mood=analysis.mood,
        confidence=analysis.confidence,
        distribution=MoodDistribution.from_scores(
            analysis.positive, analysis.negative, analysis.neutral
        ),
        keywords=analysis.keywords[:5],
        reasoning=analysis.reasoning,
    )


class AgentSentimentProvider(SentimentProvider):
    """Classifies transcripts with a PydanticAI agent."""

    name = "pydantic-ai-mood"

    def __init__(
        self,
        agent_factory: Callable[[], Any],
        api_key: str = "",
        agent: Optional[Any] = None,
    ) -> None:
        """
        Initialize the provider.

        Args:
            agent_factory: Builds the agent on first use
            api_key: Model provider key; the provider reports unconfigured without it
            agent: Pre-built agent (tests inject fakes here)
        """
        self.agent_factory = agent_factory
        self.api_key = api_key
        self._agent: Optional[Any] = agent

    @property
    def configured(self) -> bool:
        return self._agent is not None or bool(self.api_key)

    def _get_agent(self) -> Any:
        """Get or create the mood agent."""
        if self._agent is None:
            if not self.api_key:
                raise ProviderUnavailableError(self.name, "No model API key configured")
            self._agent = self.agent_factory()
        return self._agent

    async def _classify(self, text: str) -> SentimentResult:
        try:
            agent = self._get_agent()
            result = await agent.run(f'Transcript: "{text}"')
        except httpx.HTTPError as e:
            raise classify_http_error(self.name, e) from e
        except (ProviderUnavailableError, ProviderResponseError):
            raise
        except Exception as e:
            # pydantic-ai surfaces model/HTTP failures and bad model names under several exception types
            raise ProviderUnavailableError(self.name, f"Agent run failed: {e}") from e

        if not result or not getattr(result, "output", None):
            raise ProviderResponseError(self.name, "Agent returned no output")

        output = result.output
        if not isinstance(output, MoodAnalysis):
            try:
                output = MoodAnalysis.model_validate(output)
            except ValueError as e:
                raise ProviderResponseError(self.name, f"Unexpected agent output: {e}") from e

        sentiment = analysis_to_result(output)
        logger.info(f"Classified transcript as {sentiment.mood} ({sentiment.confidence:.2f})")
        return sentiment

    async def classify(self, text: str) -> ProviderResult[SentimentResult]:
        return await capture(self._classify(text))
