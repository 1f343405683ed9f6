# dialogue/llm/personalities.py
from dataclasses import dataclass
from typing import List

from app.models.session import Personality


@dataclass(frozen=True)
class PersonalityTemplate:
    """A simulated speaker the roster can be filled from."""
    name: str
    personality: Personality
    description: str


# Order matters: a session with N simulated seats takes the first N.
PERSONALITY_TEMPLATES: List[PersonalityTemplate] = [
    PersonalityTemplate(
        name="AI Leader",
        personality=Personality.CONFIDENT,
        description="Takes charge, makes decisive statements",
    ),
    PersonalityTemplate(
        name="AI Empath",
        personality=Personality.EMOTIONAL,
        description="Focuses on human impact and feelings",
    ),
    PersonalityTemplate(
        name="AI Analyst",
        personality=Personality.DATA_DRIVEN,
        description="Provides statistics and logical arguments",
    ),
]


def template_for(personality: Personality) -> PersonalityTemplate:
    for template in PERSONALITY_TEMPLATES:
        if template.personality == personality:
            return template
    raise ValueError(f"No template for personality: {personality}")


def personality_prompt(personality: Personality) -> str:
    if personality == Personality.CONFIDENT:
        return (
            "You are a confident leader in a group discussion. "
            "Be decisive, take charge, and make strong points. "
            "Keep responses to 2-3 sentences."
        )
    elif personality == Personality.EMOTIONAL:
        return (
            "You are an emotional speaker who focuses on human impact and feelings. "
            "Be empathetic and consider the human side of issues. "
            "Keep responses to 2-3 sentences."
        )
    elif personality == Personality.DATA_DRIVEN:
        return (
            "You are a data-driven analyst who provides statistics and logical arguments. "
            "Use facts, numbers, and logical reasoning. "
            "Keep responses to 2-3 sentences."
        )
    raise ValueError(f"Unhandled personality: {personality}")
