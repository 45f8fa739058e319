"""PydanticAI agent configurations."""

from vomage.agents.mood import MOOD_ANALYST_SYSTEM_PROMPT, MoodAnalysis, create_mood_agent

__all__ = [
    "create_mood_agent",
    "MoodAnalysis",
    "MOOD_ANALYST_SYSTEM_PROMPT",
]
