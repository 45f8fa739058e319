"""Sentiment models."""

from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

Mood = Literal[
    "happy",
    "sad",
    "angry",
    "calm",
    "excited",
    "thoughtful",
    "peaceful",
    "neutral",
]

MOODS: tuple[str, ...] = (
    "happy",
    "sad",
    "angry",
    "calm",
    "excited",
    "thoughtful",
    "peaceful",
    "neutral",
)


class MoodDistribution(BaseModel):
    """Positive/negative/neutral split summing to 1."""

    positive: float = Field(ge=0, le=1)
    negative: float = Field(ge=0, le=1)
    neutral: float = Field(ge=0, le=1)

    @model_validator(mode="after")
    def sums_to_one(self) -> "MoodDistribution":
        """Validate that the three shares add up to 1."""
        total = self.positive + self.negative + self.neutral
        if abs(total - 1.0) > 1e-3:
            raise ValueError(f"distribution must sum to 1, got {total:.4f}")
        return self

    @classmethod
    def from_scores(cls, positive: float, negative: float, neutral: float) -> "MoodDistribution":
        """Normalize raw non-negative scores into a distribution."""
        scores = [max(positive, 0.0), max(negative, 0.0), max(neutral, 0.0)]
        total = sum(scores)
        if total <= 0:
            return cls.uniform()
        pos, neg = round(scores[0] / total, 4), round(scores[1] / total, 4)
        return cls(positive=pos, negative=neg, neutral=max(round(1.0 - pos - neg, 4), 0.0))

    @classmethod
    def uniform(cls) -> "MoodDistribution":
        return cls(positive=0.33, negative=0.33, neutral=0.34)


class SentimentResult(BaseModel):
    """Mood classification of a transcript."""

    mood: Mood
    confidence: float = Field(ge=0, le=1)
    distribution: MoodDistribution
    keywords: list[str] = Field(default_factory=list)
    reasoning: Optional[str] = None

    @classmethod
    def neutral_default(cls) -> "SentimentResult":
        """Result used when the sentiment provider is unavailable."""
        return cls(mood="neutral", confidence=0.0, distribution=MoodDistribution.uniform())
