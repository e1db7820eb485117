"""
Agnaistic Adapter
=================

Converts Agnaistic character exports to and from the canonical model.
"""

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from persona_engine.models import CardFormat, CharacterCard, DEFAULT_CARD_NAME
from .lorebook_converters import agnaistic_book_to_lorebook, lorebook_to_agnaistic_book
from .models import AgnaisticCard, AgnaisticPersona

logger = logging.getLogger(__name__)


def _persona_text(persona: AgnaisticPersona) -> str:
    """
    Flatten a persona block to prose.

    Text personas keep their single text attribute. Other kinds (W++,
    boostyle) become one "attr: v1, v2" line per attribute.
    """
    if persona.kind == "text":
        return "\n".join(persona.attributes.get("text", []))
    lines = []
    for attribute, values in persona.attributes.items():
        lines.append(f"{attribute}: {', '.join(values)}")
    return "\n".join(lines)


class AgnaisticAdapter:
    """Convert between Agnaistic card JSON and CharacterCard."""

    @staticmethod
    def is_agnaistic(obj: Any) -> bool:
        return isinstance(obj, dict) and obj.get("kind") == "character"

    @staticmethod
    def from_agnaistic(obj: Dict[str, Any]) -> Optional[CharacterCard]:
        try:
            agnai = AgnaisticCard.model_validate(obj)
        except ValidationError as e:
            logger.warning(f"Invalid Agnaistic card: {e.error_count()} validation error(s)")
            return None

        # Older exports put the persona prose in description
        persona = _persona_text(agnai.persona) or agnai.description

        card = CharacterCard(
            name=agnai.name,
            persona=persona,
            scenario=agnai.scenario,
            greeting=agnai.greeting,
            example=agnai.sampleChat,
            system=agnai.systemPrompt,
            post_history_instructions=agnai.postHistoryInstructions,
            alternate_greetings=list(agnai.alternateGreetings),
            tags={t for t in agnai.tags if t},
            creator=agnai.creator,
            version=agnai.characterVersion,
            creator_notes=agnai.description if persona != agnai.description else "",
            extensions=dict(agnai.extensions),
            source_format=CardFormat.AGNAISTIC,
        )

        if agnai.characterBook is not None and agnai.characterBook.entries:
            card.lorebook = agnaistic_book_to_lorebook(agnai.characterBook)

        return card

    @staticmethod
    def to_agnaistic(card: CharacterCard) -> Dict[str, Any]:
        """Convert to Agnaistic JSON with a text persona."""
        name = card.name.strip() or DEFAULT_CARD_NAME
        book = None
        if card.lorebook is not None:
            book = lorebook_to_agnaistic_book(card.lorebook, default_name=name)
            # Keyless entries are dropped, which can leave nothing to export
            if not book.entries:
                book = None

        agnai = AgnaisticCard(
            name=name,
            description=card.creator_notes,
            tags=card.sorted_tags(),
            scenario=card.scenario,
            greeting=card.greeting,
            sampleChat=card.example,
            persona=AgnaisticPersona(kind="text", attributes={"text": [card.persona]}),
            systemPrompt=card.system,
            postHistoryInstructions=card.post_history_instructions,
            alternateGreetings=list(card.alternate_greetings),
            characterBook=book,
            creator=card.creator,
            characterVersion=card.version,
            extensions=dict(card.extensions),
        )
        return agnai.model_dump(mode="json", exclude_none=True)
