"""
Tavern Adapter
==============

Converts between Tavern character cards (V1, V2, V3) and the canonical
CharacterCard model.

V1 cards are flat objects and are upgraded to the V2 shape on the way in.
All converters are pure: failure is reported by returning None.
"""

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from persona_engine.models import CardFormat, CharacterCard, DEFAULT_CARD_NAME
from .lorebook_converters import character_book_to_lorebook, lorebook_to_character_book
from .models import (
    TavernSpec,
    TavernCardV1,
    TavernCardV2,
    TavernCardV2Data,
    TavernCardV3,
    TavernCardV3Data,
)

logger = logging.getLogger(__name__)


def _card_from_data(data: TavernCardV2Data, source_format: CardFormat) -> CharacterCard:
    """Map V2/V3 data fields onto a fresh canonical card."""
    card = CharacterCard(
        name=data.name,
        spoken_name=getattr(data, "nickname", ""),
        persona=data.description,
        personality=data.personality,
        scenario=data.scenario,
        greeting=data.first_mes,
        example=data.mes_example,
        system=data.system_prompt,
        post_history_instructions=data.post_history_instructions,
        alternate_greetings=list(data.alternate_greetings),
        tags={t for t in data.tags if t},
        creator=data.creator,
        version=data.character_version,
        creator_notes=data.creator_notes,
        extensions=dict(data.extensions),
        source_format=source_format,
    )

    book = data.character_book
    if book is not None and book.entries:
        card.lorebook = character_book_to_lorebook(book)

    return card


def _data_fields(card: CharacterCard, v3: bool = False) -> Dict[str, Any]:
    """Shared V2/V3 data fields for a canonical card."""
    fields: Dict[str, Any] = dict(
        name=card.name.strip() or DEFAULT_CARD_NAME,
        description=card.persona,
        personality=card.personality,
        scenario=card.scenario,
        first_mes=card.greeting,
        mes_example=card.example,
        creator_notes=card.creator_notes,
        system_prompt=card.system,
        post_history_instructions=card.post_history_instructions,
        alternate_greetings=list(card.alternate_greetings),
        tags=card.sorted_tags(),
        creator=card.creator,
        character_version=card.version,
        extensions=dict(card.extensions),
    )
    if card.lorebook is not None and card.lorebook.entries:
        fields["character_book"] = lorebook_to_character_book(card.lorebook, v3=v3)
    return fields


class TavernAdapter:
    """Convert between Tavern card JSON and CharacterCard."""

    # ===========================
    # Sniffing
    # ===========================

    @staticmethod
    def is_v1(obj: Any) -> bool:
        """Flat card: a name plus description or personality, no spec."""
        return (
            isinstance(obj, dict)
            and "spec" not in obj
            and "name" in obj
            and ("description" in obj or "personality" in obj)
        )

    @staticmethod
    def is_v2(obj: Any) -> bool:
        return isinstance(obj, dict) and obj.get("spec") == TavernSpec.V2.value

    @staticmethod
    def is_v3(obj: Any) -> bool:
        return isinstance(obj, dict) and obj.get("spec") == TavernSpec.V3.value

    # ===========================
    # Decoding
    # ===========================

    @staticmethod
    def from_v1(obj: Dict[str, Any]) -> Optional[CharacterCard]:
        """Upgrade a V1 card to V2 and convert it."""
        try:
            v1 = TavernCardV1.model_validate(obj)
        except ValidationError as e:
            logger.warning(f"Invalid Tavern V1 card: {e.error_count()} validation error(s)")
            return None

        data = TavernCardV2Data(
            name=v1.name,
            description=v1.description,
            personality=v1.personality,
            scenario=v1.scenario,
            first_mes=v1.first_mes,
            mes_example=v1.mes_example,
        )
        return _card_from_data(data, CardFormat.TAVERN_V1)

    @staticmethod
    def from_v2(obj: Dict[str, Any]) -> Optional[CharacterCard]:
        """
        Convert a Tavern V2 card.

        Args:
            obj: Parsed card JSON

        Returns:
            CharacterCard, or None if a required field is missing
        """
        try:
            v2 = TavernCardV2.model_validate(obj)
        except ValidationError as e:
            logger.warning(f"Invalid Tavern V2 card: {e.error_count()} validation error(s)")
            return None
        return _card_from_data(v2.data, CardFormat.TAVERN_V2)

    @staticmethod
    def from_v3(obj: Dict[str, Any]) -> Optional[CharacterCard]:
        """Convert a Tavern V3 card; nickname becomes the spoken name."""
        try:
            v3 = TavernCardV3.model_validate(obj)
        except ValidationError as e:
            logger.warning(f"Invalid Tavern V3 card: {e.error_count()} validation error(s)")
            return None
        return _card_from_data(v3.data, CardFormat.TAVERN_V3)

    # ===========================
    # Encoding
    # ===========================

    @staticmethod
    def to_v1(card: CharacterCard) -> Dict[str, Any]:
        v1 = TavernCardV1(
            name=card.name.strip() or DEFAULT_CARD_NAME,
            description=card.persona,
            personality=card.personality,
            scenario=card.scenario,
            first_mes=card.greeting,
            mes_example=card.example,
        )
        return v1.model_dump(mode="json")

    @staticmethod
    def to_v2(card: CharacterCard) -> Dict[str, Any]:
        """
        Convert a CharacterCard to Tavern V2 JSON.

        Empty collections are emitted as []; the character book is left
        out when the lorebook has no entries.
        """
        v2 = TavernCardV2(data=TavernCardV2Data(**_data_fields(card)))
        return v2.model_dump(mode="json", exclude_none=True)

    @staticmethod
    def to_v3(card: CharacterCard) -> Dict[str, Any]:
        """Convert a CharacterCard to Tavern V3 JSON."""
        fields = _data_fields(card, v3=True)
        if card.spoken_name and card.spoken_name != fields["name"]:
            fields["nickname"] = card.spoken_name
        v3 = TavernCardV3(data=TavernCardV3Data(**fields))
        return v3.model_dump(mode="json", exclude_none=True)
