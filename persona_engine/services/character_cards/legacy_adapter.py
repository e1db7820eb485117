"""
Legacy Adapter
==============

Pygmalion JSON and text-generation-webui YAML characters.
"""

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from persona_engine.models import CardFormat, CharacterCard, DEFAULT_CARD_NAME
from .models import PygmalionCard, TextGenWebUICard

logger = logging.getLogger(__name__)


def _combine_persona_and_scenario(card: CharacterCard) -> str:
    parts = [text.strip() for text in (card.persona, card.scenario) if text and text.strip()]
    return "\n".join(parts)


class LegacyAdapter:
    """Convert Pygmalion and TextGen WebUI characters."""

    @staticmethod
    def is_pygmalion(obj: Any) -> bool:
        return isinstance(obj, dict) and "char_name" in obj

    @staticmethod
    def is_text_gen(obj: Any) -> bool:
        """A name plus context or greeting."""
        return isinstance(obj, dict) and "name" in obj and ("context" in obj or "greeting" in obj)

    @staticmethod
    def from_pygmalion(obj: Dict[str, Any]) -> Optional[CharacterCard]:
        try:
            pyg = PygmalionCard.model_validate(obj)
        except ValidationError as e:
            logger.warning(f"Invalid Pygmalion card: {e.error_count()} validation error(s)")
            return None

        card = CharacterCard(
            name=pyg.char_name,
            persona=pyg.char_persona,
            scenario=pyg.world_scenario,
            greeting=pyg.char_greeting,
            example=pyg.example_dialogue,
            source_format=CardFormat.PYGMALION,
        )
        return card

    @staticmethod
    def to_pygmalion(card: CharacterCard) -> Dict[str, Any]:
        pyg = PygmalionCard(
            char_name=card.name.strip() or DEFAULT_CARD_NAME,
            char_persona=card.persona,
            world_scenario=card.scenario,
            char_greeting=card.greeting,
            example_dialogue=card.example,
        )
        return pyg.model_dump(mode="json")

    @staticmethod
    def from_text_gen(obj: Dict[str, Any]) -> Optional[CharacterCard]:
        """Convert a TextGen WebUI character; context becomes the persona."""
        try:
            textgen = TextGenWebUICard.model_validate(obj)
        except ValidationError as e:
            logger.warning(f"Invalid TextGen WebUI character: {e.error_count()} validation error(s)")
            return None

        card = CharacterCard(
            name=textgen.name,
            persona=textgen.context,
            greeting=textgen.greeting,
            example=textgen.example_dialogue,
            source_format=CardFormat.TEXT_GEN_WEBUI,
        )
        return card

    @staticmethod
    def to_text_gen(card: CharacterCard) -> Dict[str, Any]:
        """TextGen has no scenario field, so it is folded into the context."""
        textgen = TextGenWebUICard(
            name=card.name.strip() or DEFAULT_CARD_NAME,
            greeting=card.greeting,
            context=_combine_persona_and_scenario(card),
            example_dialogue=card.example,
        )
        return textgen.model_dump(mode="json")
