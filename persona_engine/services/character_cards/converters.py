"""
Card Converters
===============

Strategy table mapping each CardFormat to its sniff, decode and encode
functions. Supporting another vendor format means adding one row here.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

from persona_engine.models import CardFormat, CharacterCard, DEFAULT_CARD_NAME
from .tavern_adapter import TavernAdapter
from .faraday_adapter import FaradayAdapter
from .agnaistic_adapter import AgnaisticAdapter
from .legacy_adapter import LegacyAdapter
from .ginger_adapter import GingerAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CardCodec:
    """Sniff, decode and encode functions for one wire format."""
    sniff: Callable[[Any], bool]
    decode: Callable[[Any], Optional[CharacterCard]]
    encode: Callable[[CharacterCard], Any]


CARD_CODECS: Dict[CardFormat, CardCodec] = {
    CardFormat.TAVERN_V1: CardCodec(TavernAdapter.is_v1, TavernAdapter.from_v1, TavernAdapter.to_v1),
    CardFormat.TAVERN_V2: CardCodec(TavernAdapter.is_v2, TavernAdapter.from_v2, TavernAdapter.to_v2),
    CardFormat.TAVERN_V3: CardCodec(TavernAdapter.is_v3, TavernAdapter.from_v3, TavernAdapter.to_v3),
    CardFormat.FARADAY: CardCodec(FaradayAdapter.is_faraday, FaradayAdapter.from_faraday, FaradayAdapter.to_faraday),
    CardFormat.AGNAISTIC: CardCodec(AgnaisticAdapter.is_agnaistic, AgnaisticAdapter.from_agnaistic, AgnaisticAdapter.to_agnaistic),
    CardFormat.PYGMALION: CardCodec(LegacyAdapter.is_pygmalion, LegacyAdapter.from_pygmalion, LegacyAdapter.to_pygmalion),
    CardFormat.TEXT_GEN_WEBUI: CardCodec(LegacyAdapter.is_text_gen, LegacyAdapter.from_text_gen, LegacyAdapter.to_text_gen),
    CardFormat.GINGER: CardCodec(GingerAdapter.is_ginger, GingerAdapter.from_ginger, GingerAdapter.to_ginger),
}


def decode_card(
    card_format: CardFormat,
    obj: Any,
    default_name: str = DEFAULT_CARD_NAME
) -> Optional[CharacterCard]:
    """
    Decode a parsed document with the given format's converter.

    A blank name on an otherwise valid card becomes default_name. Returns
    None for unknown formats or when the converter fails; errors raised
    inside a converter are logged and treated as failure.
    """
    codec = CARD_CODECS.get(card_format)
    if codec is None:
        return None
    try:
        card = codec.decode(obj)
    except Exception as e:
        logger.warning(f"Failed to decode {card_format.value} card: {e}")
        return None

    if card is not None:
        card.ensure_name(default_name)
    return card


def encode_card(card_format: CardFormat, card: CharacterCard) -> Any:
    """Encode a card to a format's wire document."""
    codec = CARD_CODECS.get(card_format)
    if codec is None:
        raise ValueError(f"No encoder for card format '{card_format.value}'")
    return codec.encode(card)


def decode_first(
    formats: Iterable[CardFormat],
    obj: Any,
    default_name: str = DEFAULT_CARD_NAME
) -> Optional[CharacterCard]:
    """Decode a document with the first format in the list that converts it."""
    for card_format in formats:
        card = decode_card(card_format, obj, default_name)
        if card is not None:
            return card
        logger.debug(f"Candidate {card_format.value} did not convert, trying next")
    return None
