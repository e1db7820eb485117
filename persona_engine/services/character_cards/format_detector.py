"""
Card Format Detector
===================

Detects character card and lorebook formats from PNG metadata, parsed
JSON/YAML documents and BYAF archives.

Detection tries candidates in priority order. A candidate that fails to
parse is skipped; only the final outcome is reported.
"""

import base64
import binascii
import json
import logging
import zipfile
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from persona_engine.models import CardFormat
from .converters import CARD_CODECS
from .faraday_adapter import FaradayAdapter
from .models import ByafManifest

logger = logging.getLogger(__name__)


class LorebookFormat(str, Enum):
    """Supported standalone lorebook formats."""
    WORLD_BOOK = "world_book"
    TAVERN_V3 = "lorebook_v3"
    AGNAISTIC = "agnaistic"
    CSV = "csv"
    UNKNOWN = "unknown"


class DetectionStatus(str, Enum):
    """Terminal outcome of archive detection."""
    FOUND = "found"
    NO_DATA = "no_data"
    INVALID = "invalid"


class ByafLayout(str, Enum):
    """How a BYAF archive stores its character."""
    FLAT = "flat"       # schemaVersion-tagged character file
    NESTED = "nested"   # Faraday-style {"character": {...}}


@dataclass
class ByafDetection:
    """Result of inspecting a BYAF archive."""
    status: DetectionStatus
    manifest: Optional[ByafManifest] = None
    character_path: Optional[str] = None
    character_data: Optional[Dict[str, Any]] = None
    layout: Optional[ByafLayout] = None


class FormatDetector:
    """Detect character card formats."""

    # PNG metadata keywords, highest priority first
    PNG_KEYWORDS: List[Tuple[str, CardFormat]] = [
        ("ccv3", CardFormat.TAVERN_V3),
        ("chara", CardFormat.TAVERN_V2),
        ("ginger", CardFormat.GINGER),
        ("faraday", CardFormat.FARADAY),
    ]

    # JSON schema priority; earlier formats shadow later, looser ones
    JSON_ORDER: List[CardFormat] = [
        CardFormat.TAVERN_V3,
        CardFormat.TAVERN_V2,
        CardFormat.AGNAISTIC,
        CardFormat.TAVERN_V1,
        CardFormat.FARADAY,
        CardFormat.PYGMALION,
    ]

    YAML_ORDER: List[CardFormat] = [CardFormat.TEXT_GEN_WEBUI] + JSON_ORDER

    BYAF_MANIFEST = "manifest.json"

    # ===========================
    # PNG
    # ===========================

    @staticmethod
    def decode_payload(text: str) -> str:
        """
        Decode a PNG metadata payload.

        Payloads are normally base64 over UTF-8 JSON. Anything that is not
        valid base64 is used verbatim.
        """
        compact = "".join(text.split())
        try:
            return base64.b64decode(compact, validate=True).decode("utf-8")
        except (binascii.Error, ValueError):
            pass

        # tEXt is read as Latin-1; recover UTF-8 written raw into it
        try:
            return text.encode("latin-1").decode("utf-8")
        except (UnicodeEncodeError, UnicodeDecodeError):
            return text

    @classmethod
    def has_card_keywords(cls, chunks: Dict[str, str]) -> bool:
        """True if any known card keyword is present."""
        lowered = {k.lower() for k in chunks}
        return any(keyword in lowered for keyword, _ in cls.PNG_KEYWORDS)

    @classmethod
    def png_candidates(cls, chunks: Dict[str, str]) -> List[Tuple[CardFormat, Any]]:
        """
        List decodable (format, payload) pairs found in PNG text chunks.

        Ginger payloads are returned as XML text; all others as parsed
        JSON objects whose format comes from the JSON rules.
        """
        lowered = {k.lower(): v for k, v in chunks.items()}
        candidates: List[Tuple[CardFormat, Any]] = []

        for keyword, hint in cls.PNG_KEYWORDS:
            raw = lowered.get(keyword)
            if not raw:
                continue

            payload = cls.decode_payload(raw)
            if hint == CardFormat.GINGER:
                candidates.append((CardFormat.GINGER, payload))
                continue

            try:
                parsed = json.loads(payload)
            except json.JSONDecodeError as e:
                logger.warning(f"'{keyword}' chunk is not valid JSON: {e}")
                continue

            detected = cls.detect_json(parsed)
            if detected == CardFormat.UNKNOWN:
                logger.warning(f"'{keyword}' chunk holds an unrecognized card schema")
                continue
            candidates.append((detected, parsed))

        return candidates

    @classmethod
    def detect_png(cls, chunks: Dict[str, str]) -> Tuple[CardFormat, Optional[Any]]:
        """
        Detect card format from PNG text chunks.

        Args:
            chunks: Keyword to text mapping from the PNG codec

        Returns:
            Tuple of (CardFormat, payload); payload is None if nothing matched
        """
        candidates = cls.png_candidates(chunks)
        if not candidates:
            return (CardFormat.UNKNOWN, None)
        return candidates[0]

    # ===========================
    # JSON / YAML
    # ===========================

    @staticmethod
    def _matches(card_format: CardFormat, obj: Any) -> bool:
        try:
            return bool(CARD_CODECS[card_format].sniff(obj))
        except Exception as e:
            logger.debug(f"Sniffing {card_format.value} failed: {e}")
            return False

    @classmethod
    def json_candidates(cls, obj: Any) -> List[CardFormat]:
        """All JSON card formats whose shape matches, in priority order."""
        return [f for f in cls.JSON_ORDER if cls._matches(f, obj)]

    @classmethod
    def detect_json(cls, obj: Any) -> CardFormat:
        candidates = cls.json_candidates(obj)
        return candidates[0] if candidates else CardFormat.UNKNOWN

    @classmethod
    def yaml_candidates(cls, obj: Any) -> List[CardFormat]:
        return [f for f in cls.YAML_ORDER if cls._matches(f, obj)]

    @classmethod
    def detect_yaml(cls, obj: Any) -> CardFormat:
        """TextGen WebUI first, then the JSON rules."""
        candidates = cls.yaml_candidates(obj)
        return candidates[0] if candidates else CardFormat.UNKNOWN

    # ===========================
    # BYAF
    # ===========================

    @classmethod
    def detect_byaf(cls, archive: zipfile.ZipFile) -> ByafDetection:
        """
        Inspect a BYAF archive.

        A missing manifest or an empty character list means there is no
        data. The first listed character decides the layout.
        """
        try:
            manifest_data = json.loads(archive.read(cls.BYAF_MANIFEST).decode("utf-8"))
            manifest = ByafManifest.model_validate(manifest_data)
        except KeyError:
            logger.warning("BYAF archive has no manifest.json")
            return ByafDetection(status=DetectionStatus.NO_DATA)
        except Exception as e:
            logger.warning(f"Unreadable BYAF manifest: {e}")
            return ByafDetection(status=DetectionStatus.INVALID)

        if not manifest.characters:
            logger.warning("BYAF manifest lists no characters")
            return ByafDetection(status=DetectionStatus.NO_DATA, manifest=manifest)

        character_path = manifest.characters[0]
        try:
            character_data = json.loads(archive.read(character_path).decode("utf-8"))
        except KeyError:
            logger.warning(f"BYAF character file '{character_path}' is missing")
            return ByafDetection(status=DetectionStatus.INVALID, manifest=manifest)
        except Exception as e:
            logger.warning(f"Unreadable BYAF character file '{character_path}': {e}")
            return ByafDetection(status=DetectionStatus.INVALID, manifest=manifest)

        if not isinstance(character_data, dict):
            return ByafDetection(status=DetectionStatus.INVALID, manifest=manifest)

        if FaradayAdapter.is_faraday(character_data):
            layout = ByafLayout.NESTED
        elif FaradayAdapter.is_byaf_character(character_data):
            layout = ByafLayout.FLAT
        else:
            logger.warning(f"BYAF character file '{character_path}' has an unknown layout")
            return ByafDetection(status=DetectionStatus.INVALID, manifest=manifest)

        return ByafDetection(
            status=DetectionStatus.FOUND,
            manifest=manifest,
            character_path=character_path,
            character_data=character_data,
            layout=layout,
        )

    # ===========================
    # Lorebooks
    # ===========================

    @staticmethod
    def unwrap_lorebook(obj: Any) -> Any:
        """Return the inner book of a {"spec": "lorebook_v3", "data": {...}} wrapper."""
        if isinstance(obj, dict) and obj.get("spec") == "lorebook_v3" and isinstance(obj.get("data"), dict):
            return obj["data"]
        return obj

    @classmethod
    def detect_lorebook(cls, obj: Any) -> LorebookFormat:
        """
        Detect a JSON lorebook format.

        A keyed `entries` object is a World Book. An `entries` array is
        Agnaistic when it uses `keywords` (or the book is a memory book),
        otherwise Tavern V3.
        """
        if not isinstance(obj, dict):
            return LorebookFormat.UNKNOWN

        if obj.get("spec") == "lorebook_v3":
            return LorebookFormat.TAVERN_V3

        entries = obj.get("entries")
        if isinstance(entries, dict):
            return LorebookFormat.WORLD_BOOK

        if isinstance(entries, list):
            if obj.get("kind") == "memory":
                return LorebookFormat.AGNAISTIC
            if any(isinstance(e, dict) and "keywords" in e for e in entries):
                return LorebookFormat.AGNAISTIC
            return LorebookFormat.TAVERN_V3

        return LorebookFormat.UNKNOWN

    @classmethod
    def get_format_name(cls, card_format: CardFormat) -> str:
        """Get human-readable format name."""
        names = {
            CardFormat.TAVERN_V1: "Tavern V1",
            CardFormat.TAVERN_V2: "Tavern V2",
            CardFormat.TAVERN_V3: "Tavern V3",
            CardFormat.FARADAY: "Faraday / Backyard AI",
            CardFormat.GINGER: "Ginger",
            CardFormat.AGNAISTIC: "Agnaistic",
            CardFormat.PYGMALION: "Pygmalion",
            CardFormat.TEXT_GEN_WEBUI: "Text Generation WebUI",
            CardFormat.UNKNOWN: "Unknown Format",
        }
        return names.get(card_format, "Unknown")
