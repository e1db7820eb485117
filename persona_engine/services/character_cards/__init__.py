"""
Character Card System
====================

Converts character cards between interchange formats through one canonical
model.

Supports:
- Tavern V1/V2/V3 JSON, in PNG metadata or plain files
- Faraday / Backyard AI cards and .byaf archives
- Agnaistic, Pygmalion and text-generation-webui characters
- Ginger XML cards and .charx archives
- Standalone lorebooks (World Book, V3, Agnaistic, CSV)
"""

from .card_service import CharacterCardService, LoadResult
from .converters import CARD_CODECS, CardCodec, decode_card, decode_first, encode_card
from .format_detector import FormatDetector, LorebookFormat
from .lorebook_service import LorebookService, LorebookLoadError
from .metadata_handler import PNGMetadataHandler

__all__ = [
    'CharacterCardService',
    'LoadResult',
    'CARD_CODECS',
    'CardCodec',
    'decode_card',
    'decode_first',
    'encode_card',
    'FormatDetector',
    'LorebookFormat',
    'LorebookService',
    'LorebookLoadError',
    'PNGMetadataHandler',
]
