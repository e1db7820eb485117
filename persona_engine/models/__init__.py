"""Models package for Persona Engine."""

from .character_card import (
    CardFormat,
    CharacterCard,
    Lorebook,
    LorebookEntry,
    DEFAULT_CARD_NAME,
)

__all__ = [
    "CardFormat",
    "CharacterCard",
    "Lorebook",
    "LorebookEntry",
    "DEFAULT_CARD_NAME",
]
