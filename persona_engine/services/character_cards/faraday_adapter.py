"""
Faraday Adapter
===============

Converts Backyard AI (formerly Faraday) characters to and from the
canonical model: the nested Faraday card found in PNG metadata and
JSON exports, and the flat character and scenario files inside .byaf
archives.
"""

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from persona_engine.models import CardFormat, CharacterCard, DEFAULT_CARD_NAME
from .lorebook_converters import lore_items_to_lorebook, lorebook_to_lore_items
from .models import (
    FaradayCard,
    FaradayCharacter,
    ByafCharacter,
    ByafImage,
    ByafManifest,
    ByafAuthor,
    ByafMessage,
    ByafScenario,
)

logger = logging.getLogger(__name__)

BYAF_AVATAR_NAME = "images/avatar.png"


class FaradayAdapter:
    """Convert between Backyard AI character data and CharacterCard."""

    @staticmethod
    def is_faraday(obj: Any) -> bool:
        """Nested card: a top-level 'character' object."""
        return isinstance(obj, dict) and isinstance(obj.get("character"), dict)

    @staticmethod
    def is_byaf_character(obj: Any) -> bool:
        """Flat BYAF character: schemaVersion and no 'character' wrapper."""
        return isinstance(obj, dict) and "schemaVersion" in obj and "character" not in obj

    @staticmethod
    def from_faraday(obj: Dict[str, Any]) -> Optional[CharacterCard]:
        """
        Convert a Faraday card.

        The display name becomes the card name and the internal AI name
        becomes the spoken name.
        """
        try:
            faraday = FaradayCard.model_validate(obj)
        except ValidationError as e:
            logger.warning(f"Invalid Faraday card: {e.error_count()} validation error(s)")
            return None

        character = faraday.character
        card = CharacterCard(
            name=character.aiDisplayName or character.aiName,
            spoken_name=character.aiName,
            persona=character.aiPersona,
            scenario=character.scenario,
            system=character.basePrompt,
            example=character.customDialogue,
            greeting=character.firstMessage,
            lorebook=lore_items_to_lorebook(character.loreItems),
            source_format=CardFormat.FARADAY,
        )
        return card

    @staticmethod
    def to_faraday(card: CharacterCard) -> Dict[str, Any]:
        name = card.name.strip() or DEFAULT_CARD_NAME
        faraday = FaradayCard(
            version=4,
            character=FaradayCharacter(
                aiDisplayName=name,
                aiName=card.spoken_name or name,
                aiPersona=card.persona,
                scenario=card.scenario,
                basePrompt=card.system,
                customDialogue=card.example,
                firstMessage=card.greeting,
                loreItems=lorebook_to_lore_items(card.lorebook),
            ),
        )
        return faraday.model_dump(mode="json", exclude_none=True)

    # ===========================
    # BYAF archive documents
    # ===========================

    @staticmethod
    def from_byaf_character(obj: Dict[str, Any]) -> Optional[CharacterCard]:
        """Convert a flat BYAF character file."""
        try:
            character = ByafCharacter.model_validate(obj)
        except ValidationError as e:
            logger.warning(f"Invalid BYAF character: {e.error_count()} validation error(s)")
            return None

        card = CharacterCard(
            name=character.displayName or character.name,
            spoken_name=character.name,
            persona=character.persona,
            lorebook=lore_items_to_lorebook(character.loreItems),
            source_format=CardFormat.FARADAY,
        )
        return card

    @staticmethod
    def apply_scenario(card: CharacterCard, obj: Dict[str, Any]) -> bool:
        """
        Fill scenario fields from a BYAF scenario file.

        Only blank card fields are filled. Returns False if the scenario
        does not validate.
        """
        try:
            scenario = ByafScenario.model_validate(obj)
        except ValidationError as e:
            logger.warning(f"Invalid BYAF scenario: {e.error_count()} validation error(s)")
            return False

        if not card.scenario:
            card.scenario = scenario.narrative
        if not card.system:
            card.system = scenario.formattingInstructions
        if not card.greeting and scenario.firstMessages:
            card.greeting = scenario.firstMessages[0].text
        if not card.example and scenario.exampleMessages:
            card.example = "\n".join(m.text for m in scenario.exampleMessages if m.text)
        return True

    @staticmethod
    def apply_author(card: CharacterCard, manifest: ByafManifest) -> None:
        """Overlay manifest author metadata onto the card."""
        author = manifest.author
        if author is None or not author.name:
            return
        card.creator = author.name
        if author.backyardURL:
            card.creator_notes = f"From Backyard AI: {author.backyardURL}"

    @staticmethod
    def to_byaf_character(card: CharacterCard, character_id: str) -> Dict[str, Any]:
        name = card.name.strip() or DEFAULT_CARD_NAME
        character = ByafCharacter(
            schemaVersion=1,
            id=character_id,
            name=card.spoken_name or name,
            displayName=name,
            persona=card.persona,
            images=[ByafImage(path=BYAF_AVATAR_NAME)] if card.portrait_data else [],
            loreItems=lorebook_to_lore_items(card.lorebook),
        )
        return character.model_dump(mode="json", exclude_none=True)

    @staticmethod
    def to_byaf_scenario(card: CharacterCard, character_id: str) -> Optional[Dict[str, Any]]:
        """Scenario file for the card, or None if it has nothing to carry."""
        if not (card.scenario or card.system or card.greeting or card.example):
            return None
        scenario = ByafScenario(
            schemaVersion=1,
            title=card.name.strip() or DEFAULT_CARD_NAME,
            narrative=card.scenario,
            formattingInstructions=card.system,
            firstMessages=[ByafMessage(characterID=character_id, text=card.greeting)] if card.greeting else [],
            exampleMessages=[ByafMessage(characterID=character_id, text=card.example)] if card.example else [],
        )
        return scenario.model_dump(mode="json")

    @staticmethod
    def to_byaf_manifest(card: CharacterCard, character_path: str, scenario_path: Optional[str] = None) -> Dict[str, Any]:
        manifest = ByafManifest(
            schemaVersion=1,
            characters=[character_path],
            scenarios=[scenario_path] if scenario_path else [],
            author=ByafAuthor(name=card.creator) if card.creator else None,
        )
        return manifest.model_dump(mode="json", exclude_none=True)
