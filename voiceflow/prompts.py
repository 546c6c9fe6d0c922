"""
Image prompt enhancement.

Turns a rough idea into a detailed image-generation prompt through the chat
model, optionally steering it toward one of the style presets.
"""

import logging
from enum import Enum
from typing import Optional

from .services.openai_service import OpenAIService

logger = logging.getLogger(__name__)

PROMPT_ENGINEER_SYSTEM_PROMPT = (
    "You are a prompt engineer. Transform the user's rough idea into a detailed, "
    "effective image generation prompt. Be specific about style, lighting, "
    "composition, camera angle. Keep it under 200 words."
)


class PromptPreset(Enum):
    NONE = "None"
    PHONE_SELFIE = "Phone Selfie"
    PROFESSIONAL_PHOTO = "Professional Photo"
    CINEMATIC = "Cinematic"
    ANIME = "Anime Style"
    OIL_PAINTING = "Oil Painting"

    @property
    def modifier(self) -> Optional[str]:
        """Style description appended to the request, None for no preset."""
        return _MODIFIERS.get(self)


_MODIFIERS = {
    PromptPreset.PHONE_SELFIE: (
        "taken with smartphone camera, front-facing selfie angle, natural lighting, "
        "slight wide-angle distortion, casual composition, realistic phone photo "
        "aesthetic, not professional photography"
    ),
    PromptPreset.PROFESSIONAL_PHOTO: (
        "professional studio photography, perfect lighting, high-end DSLR, sharp focus, "
        "clean background, commercial quality"
    ),
    PromptPreset.CINEMATIC: (
        "cinematic composition, dramatic lighting, anamorphic lens flare, shallow depth "
        "of field, movie still aesthetic, 35mm film grain"
    ),
    PromptPreset.ANIME: (
        "anime art style, vibrant colors, cel-shading, detailed linework, Studio Ghibli "
        "inspired, Japanese animation aesthetic"
    ),
    PromptPreset.OIL_PAINTING: (
        "classical oil painting style, visible brushstrokes, rich colors, museum-quality "
        "fine art, Renaissance lighting, canvas texture"
    ),
}


def build_user_message(idea: str, preset: PromptPreset = PromptPreset.NONE) -> str:
    """User message sent to the chat model for an idea and preset."""
    modifier = preset.modifier
    if modifier:
        return f"{idea}\n\nApply this style: {modifier}"
    return idea


class PromptEnhancer:
    """Expands rough ideas into image generation prompts."""

    def __init__(self, openai_service: OpenAIService):
        self.openai_service = openai_service

    async def enhance(self, idea: str, preset: PromptPreset = PromptPreset.NONE) -> str:
        """
        Enhance an idea into a full prompt.

        Raises:
            ValueError: If the idea is blank.
        """
        idea = idea.strip()
        if not idea:
            raise ValueError("Prompt idea cannot be empty")

        logger.debug(f"Enhancing prompt with preset {preset.value}")
        enhanced = await self.openai_service.summarize(
            build_user_message(idea, preset),
            system_prompt=PROMPT_ENGINEER_SYSTEM_PROMPT
        )
        return enhanced.strip()
