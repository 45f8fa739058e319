"""Mood analyst agent configuration.

Classifies what the speaker said into one of the supported moods, with a
positive/negative/neutral score split.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_ai import Agent

from vomage.config import get_settings
from vomage.models.sentiment import Mood

MOOD_ANALYST_SYSTEM_PROMPT = """
You are a mood analyst for short voice notes. You receive the transcript of a
clip someone recorded about their day or their surroundings.

TASK: classify the speaker's overall mood.

MOODS (choose exactly one):
happy, sad, angry, calm, excited, thoughtful, peaceful, neutral

SCORES:
- confidence: how sure you are of the mood, 0 to 1
- positive / negative / neutral: relative share of each polarity, 0 to 1

ALSO RETURN:
- keywords: up to five words from the transcript that carry the mood
- reasoning: one short sentence

RULES:
- Judge the words, not the language they are spoken in
- Short factual descriptions of a scene are usually calm or neutral
- Never invent content that is not in the transcript
"""


class MoodAnalysis(BaseModel):
    """Structured output of the mood analyst."""

    mood: Mood
    confidence: float = Field(ge=0, le=1)
    positive: float = Field(ge=0)
    negative: float = Field(ge=0)
    neutral: float = Field(ge=0)
    keywords: list[str] = Field(default_factory=list)
    reasoning: Optional[str] = None


def create_mood_agent(model: Optional[str] = None) -> Agent[None, MoodAnalysis]:
    """Create the mood analyst agent.

    Args:
        model: pydantic-ai model identifier; defaults to the configured one.

    Returns:
        A PydanticAI Agent producing MoodAnalysis.
    """
    settings = get_settings()

    # Set environment variable for pydantic-ai to pick up
    if settings.anthropic_api_key:
        os.environ["ANTHROPIC_API_KEY"] = settings.anthropic_api_key

    return Agent(
        model or settings.sentiment_model,
        system_prompt=MOOD_ANALYST_SYSTEM_PROMPT,
        output_type=MoodAnalysis,
        retries=1,
    )
