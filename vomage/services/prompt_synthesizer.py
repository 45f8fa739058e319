"""Deterministic transcript-to-prompt synthesis.

The transcript is matched against an ordered scene rule table, decorated with
style, mood and situational modifiers, and finally checked for faithfulness:
the prompt sent to the image provider always carries the speaker's words
verbatim.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from vomage.models.prompt import Prompt, SituationalContext, TimeOfDay
from vomage.models.sentiment import SentimentResult
from vomage.models.transcript import Transcript
from vomage.utils.errors import ContentIntegrityError

logger = logging.getLogger(__name__)

QUALITY_SUFFIX = "high quality artistic composition, professional digital art, detailed and beautiful, masterpiece"

STYLE_MODIFIERS: dict[str, str] = {
    "abstract": "abstract artistic style, flowing organic shapes, creative interpretation",
    "realistic": "photorealistic detailed style, natural accurate representation, high definition",
    "minimalist": "minimalist clean style, simple elegant lines, uncluttered composition",
    "artistic": "artistic expressive style, creative brushwork, painterly interpretation",
    "dreamy": "dreamy ethereal style, soft romantic focus, magical atmosphere",
}

MOOD_MODIFIERS: dict[str, str] = {
    "happy": "bright vibrant colors, warm golden lighting, joyful uplifting atmosphere",
    "sad": "soft muted colors, gentle diffused lighting, melancholic peaceful atmosphere",
    "neutral": "balanced natural colors, soft natural lighting, calm serene atmosphere",
    "thoughtful": "deep contemplative colors, soft introspective lighting, meditative atmosphere",
    "calm": "pastel soothing colors, gentle warm lighting, tranquil peaceful atmosphere",
    "excited": "vibrant energetic colors, dynamic bright lighting, lively enthusiastic atmosphere",
    "angry": "intense bold colors, dramatic contrasting lighting, powerful dynamic atmosphere",
    "peaceful": "soft pastel colors, gentle breeze lighting, harmonious balanced atmosphere",
}

WEATHER_MODIFIERS: dict[str, str] = {
    "sunny": "bright sunny weather, clear skies",
    "cloudy": "cloudy overcast weather, soft diffused light",
    "rainy": "rainy weather atmosphere, wet reflective surfaces",
    "snowy": "snowy winter weather, pristine white landscape",
}

TIME_OF_DAY_MODIFIERS: dict[str, str] = {
    "night": "deep night atmosphere, starlit darkness, peaceful nocturnal scene",
    "morning": "fresh morning light, dawn atmosphere, new day energy",
    "afternoon": "warm afternoon light, midday brightness, active daytime scene",
    "evening": "golden evening light, sunset atmosphere, peaceful twilight",
}

_ASCII_KEYWORD = re.compile(r"^[\x00-\x7f]+$")


def keyword_present(keyword: str, text: str) -> bool:
    """
    Match a keyword against text.

    ASCII keywords match case-insensitively on word boundaries so "sun" does
    not fire inside "sunday"; other scripts (CJK) match by substring.
    """
    if _ASCII_KEYWORD.match(keyword):
        pattern = rf"(?<![a-z0-9]){re.escape(keyword.lower())}(?![a-z0-9])"
        return re.search(pattern, text.lower()) is not None
    return keyword in text


@dataclass(frozen=True)
class SceneRule:
    """Maps keyword groups to a fixed core visual phrase.

    Every group must contribute at least one keyword for the rule to match.
    """

    name: str
    groups: tuple[tuple[str, ...], ...]
    core_phrase: str

    @property
    def is_compound(self) -> bool:
        return len(self.groups) > 1

    def matches(self, text: str) -> bool:
        return all(any(keyword_present(k, text) for k in group) for group in self.groups)


class RuleTable:
    """Ordered scene rules; compound rules are always tried first."""

    def __init__(self, rules: Iterable[SceneRule]) -> None:
        rules = list(rules)
        names = [rule.name for rule in rules]
        if len(names) != len(set(names)):
            raise ValueError("Scene rule names must be unique")
        # Stable sort keeps declaration order within each tier.
        self.rules: list[SceneRule] = sorted(rules, key=lambda rule: 0 if rule.is_compound else 1)

    def match(self, text: str) -> Optional[SceneRule]:
        for rule in self.rules:
            if rule.matches(text):
                return rule
        return None

    def __len__(self) -> int:
        return len(self.rules)


CABIN = ("小木屋", "cabin", "log cabin", "wooden cabin")
SNOW_MOUNTAIN = ("雪山", "snow mountain", "snowy mountain", "snow-capped mountain")
FLAG = ("红旗", "旗帜", "red flag", "flag", "banner")
SNOW = ("雪", "下雪", "雪花", "snow", "snowing", "snowflakes")

DEFAULT_RULES: tuple[SceneRule, ...] = (
    SceneRule(
        "cabin",
        (CABIN,),
        "small wooden cabin, cozy log house, rustic cottage in nature, wooden cabin surrounded by trees, "
        "forest cabin, traditional log cabin architecture, cabin in the woods",
    ),
    SceneRule(
        "snow_mountain_red_flag",
        (SNOW_MOUNTAIN, FLAG),
        "snow-capped mountain peak with a red flag planted on top, majestic mountain summit, "
        "red flag waving in the wind, mountaineering achievement, snowy mountain landscape, dramatic mountain scene",
    ),
    SceneRule(
        "cabin_in_snow",
        (CABIN, SNOW),
        "wooden cabin in a snowy landscape, snow-covered roof, warm light in the windows, quiet winter woods",
    ),
    SceneRule(
        "red_flag",
        (FLAG,),
        "red flag waving, bright red banner, flag on pole, patriotic symbol, red fabric fluttering in wind",
    ),
    SceneRule(
        "snow_mountain",
        (SNOW_MOUNTAIN,),
        "snow-capped mountain, mountain peak covered in snow, majestic snowy mountain, alpine landscape, mountain summit",
    ),
    SceneRule(
        "house",
        (("房子", "建筑物", "house", "home"),),
        "house, residential building, home architecture, detailed building structure",
    ),
    SceneRule(
        "castle",
        (("城堡", "castle"),),
        "castle, medieval fortress, stone castle, fairy tale castle, majestic castle architecture",
    ),
    SceneRule(
        "sky",
        (("蓝天", "白云", "天空", "blue sky", "sky", "clouds"),),
        "blue sky with white clouds, vast open sky, peaceful clouds floating",
    ),
    SceneRule(
        "mountains_water",
        (("青山", "绿水", "山水", "mountains", "mountain", "river", "lake"),),
        "green mountains and clear water, natural landscape, serene nature scene",
    ),
    SceneRule(
        "sunlight",
        (("阳光", "太阳", "光明", "sunlight", "sunshine", "sun"),),
        "bright sunlight, golden rays, warm illumination, radiant light",
    ),
    SceneRule(
        "flowers",
        (("花", "花朵", "鲜花", "flower", "flowers", "blossom"),),
        "beautiful flowers, colorful blossoms, floral arrangement, garden scene",
    ),
    SceneRule(
        "ocean",
        (("海", "大海", "海洋", "ocean", "sea", "beach", "waves"),),
        "ocean waves, vast sea, blue water, maritime scene",
    ),
    SceneRule(
        "forest",
        (("森林", "树木", "绿色", "forest", "trees", "woods"),),
        "lush forest, green trees, natural woodland, verdant landscape",
    ),
    SceneRule(
        "city",
        (("城市", "建筑", "街道", "city", "street", "buildings"),),
        "urban cityscape, modern buildings, city streets, architectural scene",
    ),
    SceneRule(
        "night",
        (("夜晚", "星空", "月亮", "night", "stars", "moon"),),
        "night sky with stars, moonlight, peaceful evening, celestial scene",
    ),
    SceneRule(
        "rain",
        (("雨", "下雨", "雨天", "rain", "raining", "rainy"),),
        "gentle rain, raindrops, wet atmosphere, rainy day scene",
    ),
    SceneRule(
        "snow",
        (SNOW,),
        "falling snow, snowflakes, winter scene, snowy landscape",
    ),
)


def default_core_phrase(text: str) -> str:
    """Direct rendering of the transcript when no scene rule matches."""
    return (
        f"a visual representation of the described scene: {text}, "
        f"detailed realistic scene, high quality artistic interpretation"
    )


def time_of_day_for_hour(hour: int) -> TimeOfDay:
    if hour < 6:
        return "night"
    if hour < 12:
        return "morning"
    if hour < 18:
        return "afternoon"
    return "evening"


def context_modifiers(context: Optional[SituationalContext]) -> list[str]:
    """Weather and time-of-day phrases for the recording context."""
    if context is None:
        return []

    modifiers: list[str] = []
    if context.weather:
        condition = context.weather.lower()
        modifiers.append(WEATHER_MODIFIERS.get(condition, f"{context.weather} weather"))

    time_of_day = context.time_of_day
    if time_of_day is None and context.captured_at is not None:
        time_of_day = time_of_day_for_hour(context.captured_at.hour)
    if time_of_day is not None:
        modifiers.append(TIME_OF_DAY_MODIFIERS[time_of_day])
    return modifiers


def verify_faithful(final_text: str, transcript_text: str) -> None:
    """
    Check that the prompt carries the transcript verbatim.

    Raises:
        ContentIntegrityError: If the transcript text is missing
    """
    if transcript_text not in final_text:
        raise ContentIntegrityError(transcript_text, final_text)


def ensure_faithful(prompt: Prompt, transcript_text: str) -> Prompt:
    """
    Return a verified prompt, prepending the transcript if it was lost.

    The correction always succeeds, so ContentIntegrityError never leaves
    this function.
    """
    try:
        verify_faithful(prompt.final_text, transcript_text)
        final_text = prompt.final_text
    except ContentIntegrityError:
        logger.warning("Prompt lost the transcript text, prepending it")
        final_text = f"{transcript_text}, {prompt.final_text}"
        verify_faithful(final_text, transcript_text)

    return prompt.model_copy(update={"final_text": final_text, "verified": True})


class PromptSynthesizer:
    """Turns transcript, sentiment and context into a single image prompt."""

    def __init__(self, rules: Optional[RuleTable] = None, default_style: str = "abstract") -> None:
        self.rules = rules or RuleTable(DEFAULT_RULES)
        self.default_style = default_style if default_style in STYLE_MODIFIERS else "abstract"

    def synthesize(
        self,
        transcript: Transcript,
        sentiment: SentimentResult,
        context: Optional[SituationalContext] = None,
        style: Optional[str] = None,
    ) -> Prompt:
        """
        Build the image prompt.

        Args:
            transcript: Normalized speech-to-text output
            sentiment: Mood classification (possibly the neutral default)
            context: Optional recording context
            style: Requested image style; unknown styles use the default

        Returns:
            Verified Prompt whose final text contains the transcript text
        """
        text = transcript.text
        style = style if style in STYLE_MODIFIERS else self.default_style

        rule = self.rules.match(text)
        core = rule.core_phrase if rule else default_core_phrase(text)

        parts = [
            core,
            STYLE_MODIFIERS[style],
            MOOD_MODIFIERS.get(sentiment.mood, MOOD_MODIFIERS["neutral"]),
            *context_modifiers(context),
            QUALITY_SUFFIX,
        ]
        prompt = Prompt(
            final_text=", ".join(parts),
            core_visual_phrase=core,
            style=style,  # type: ignore[arg-type]
            verified=False,
            rule_name=rule.name if rule else None,
        )
        prompt = ensure_faithful(prompt, text)

        logger.info(f"Synthesized prompt via rule {prompt.rule_name or 'default'} ({len(prompt.final_text)} chars)")
        return prompt
