"""
Character Card Service
=====================

Loads character cards from files and saves them back, dispatching on the
file extension:

- .png   image with card JSON (or Ginger XML) in tEXt/zTXt chunks
- .json  any supported JSON card schema
- .yaml  text-generation-webui character, or a JSON-shaped card
- .xml   Ginger native card
- .byaf  Backyard AI archive
- .charx character archive with card.json and an image

Loading never raises; the outcome is reported as a LoadResult.
"""

import base64
import json
import logging
import uuid
import zipfile
from enum import Enum
from io import BytesIO
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from persona_engine.config import EngineConfig
from persona_engine.models import CardFormat, CharacterCard
from persona_engine.utils import atomic_write_bytes, atomic_write_text
from .converters import decode_card, decode_first, encode_card
from .faraday_adapter import FaradayAdapter, BYAF_AVATAR_NAME
from .format_detector import FormatDetector, DetectionStatus, ByafLayout
from .metadata_handler import PNGMetadataHandler
from .models import ByafCharacter

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp")

# Checked in order when looking for a CHARX portrait
CHARX_PORTRAIT_NAMES = ("avatar.png", "portrait.png", "image.png", "card.png")
CHARX_CARD_NAMES = ("card.json", "character.json")


class LoadResult(str, Enum):
    """Outcome of loading a card file."""
    SUCCESS = "success"
    FILE_NOT_FOUND = "file_not_found"
    INVALID_FORMAT = "invalid_format"
    NO_DATA_FOUND = "no_data_found"
    READ_ERROR = "read_error"


LoadOutcome = Tuple[LoadResult, Optional[CharacterCard]]


def _is_image_name(name: str) -> bool:
    return name.lower().endswith(IMAGE_EXTENSIONS)


class CharacterCardService:
    """Load and save character cards."""

    def __init__(self, config: Optional[EngineConfig] = None):
        """
        Initialize the service.

        Args:
            config: Engine configuration; defaults are used when omitted
        """
        self.config = config or EngineConfig()
        self._loaders: Dict[str, Callable[[Path], LoadOutcome]] = {
            ".png": self._load_png,
            ".json": self._load_json,
            ".yaml": self._load_yaml,
            ".yml": self._load_yaml,
            ".xml": self._load_xml,
            ".byaf": self._load_byaf,
            ".charx": self._load_charx,
        }
        self._savers: Dict[str, Callable[[Path, CharacterCard], None]] = {
            ".png": self._save_png,
            ".json": self._save_json,
            ".yaml": self._save_yaml,
            ".yml": self._save_yaml,
            ".xml": self._save_xml,
            ".byaf": self._save_byaf,
            ".charx": self._save_charx,
        }

    @property
    def default_name(self) -> str:
        """Name given to cards that arrive without one."""
        return self.config.import_.default_name

    # ===========================
    # Loading
    # ===========================

    def load(self, path: Union[str, Path]) -> LoadOutcome:
        """
        Load a character card.

        Args:
            path: Card file; the extension selects the reader

        Returns:
            Tuple of (LoadResult, CharacterCard or None)
        """
        path = Path(path)
        if not path.is_file():
            logger.warning(f"Card file not found: {path}")
            return (LoadResult.FILE_NOT_FOUND, None)

        loader = self._loaders.get(path.suffix.lower())
        if loader is None:
            logger.warning(f"Unsupported card file type: {path.suffix}")
            return (LoadResult.INVALID_FORMAT, None)

        try:
            result, card = loader(path)
        except Exception as e:
            logger.error(f"Error reading card file {path}: {e}", exc_info=True)
            return (LoadResult.READ_ERROR, None)

        if card is not None:
            card.user_placeholder = self.config.import_.user_placeholder
            card.ensure_name(self.default_name)
            logger.info(
                f"Loaded '{card.name}' from {path.name} "
                f"({FormatDetector.get_format_name(card.source_format)})"
            )
        return (result, card)

    def _load_png(self, path: Path) -> LoadOutcome:
        png_data = PNGMetadataHandler.extract_image(path)
        chunks = PNGMetadataHandler.read_text_chunks(png_data)

        if not chunks or not FormatDetector.has_card_keywords(chunks):
            logger.warning(f"No character metadata in {path.name}")
            return (LoadResult.NO_DATA_FOUND, None)

        for card_format, payload in FormatDetector.png_candidates(chunks):
            card = decode_card(card_format, payload, self.default_name)
            if card is not None:
                card.portrait_data = png_data
                return (LoadResult.SUCCESS, card)

        logger.warning(f"Character metadata in {path.name} could not be decoded")
        return (LoadResult.INVALID_FORMAT, None)

    def _load_document(self, obj: Any, yaml_rules: bool = False) -> LoadOutcome:
        """Convert an already parsed JSON/YAML document."""
        if yaml_rules:
            formats = FormatDetector.yaml_candidates(obj)
        else:
            formats = FormatDetector.json_candidates(obj)

        card = decode_first(formats, obj, self.default_name)
        if card is None:
            return (LoadResult.INVALID_FORMAT, None)
        return (LoadResult.SUCCESS, card)

    def _load_json(self, path: Path) -> LoadOutcome:
        try:
            obj = json.loads(path.read_text(encoding="utf-8-sig"))
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in {path.name}: {e}")
            return (LoadResult.INVALID_FORMAT, None)
        return self._load_document(obj)

    def _load_yaml(self, path: Path) -> LoadOutcome:
        try:
            obj = yaml.safe_load(path.read_text(encoding="utf-8-sig"))
        except yaml.YAMLError as e:
            logger.warning(f"Invalid YAML in {path.name}: {e}")
            return (LoadResult.INVALID_FORMAT, None)
        return self._load_document(obj, yaml_rules=True)

    def _load_xml(self, path: Path) -> LoadOutcome:
        card = decode_card(CardFormat.GINGER, path.read_text(encoding="utf-8-sig"), self.default_name)
        if card is None:
            return (LoadResult.INVALID_FORMAT, None)
        return (LoadResult.SUCCESS, card)

    def _load_byaf(self, path: Path) -> LoadOutcome:
        with zipfile.ZipFile(path) as archive:
            detection = FormatDetector.detect_byaf(archive)
            if detection.status == DetectionStatus.NO_DATA:
                return (LoadResult.NO_DATA_FOUND, None)
            if detection.status != DetectionStatus.FOUND:
                return (LoadResult.INVALID_FORMAT, None)

            if detection.layout == ByafLayout.FLAT:
                card = FaradayAdapter.from_byaf_character(detection.character_data)
            else:
                card = FaradayAdapter.from_faraday(detection.character_data)
            if card is None:
                return (LoadResult.INVALID_FORMAT, None)

            card.portrait_data = self._find_byaf_portrait(
                archive, detection.character_path, detection.character_data
            )

            for scenario_path in detection.manifest.scenarios[:1]:
                scenario = self._read_zip_json(archive, scenario_path)
                if scenario is not None:
                    FaradayAdapter.apply_scenario(card, scenario)

            FaradayAdapter.apply_author(card, detection.manifest)
            return (LoadResult.SUCCESS, card)

    @staticmethod
    def _read_zip_json(archive: zipfile.ZipFile, name: str) -> Optional[Dict[str, Any]]:
        try:
            obj = json.loads(archive.read(name).decode("utf-8"))
        except KeyError:
            logger.warning(f"Archive entry '{name}' is missing")
            return None
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Archive entry '{name}' is not valid JSON: {e}")
            return None
        return obj if isinstance(obj, dict) else None

    @staticmethod
    def _find_entry(archive: zipfile.ZipFile, predicate: Callable[[str], bool]) -> Optional[bytes]:
        """Bytes of the first archive member whose normalized name matches."""
        for info in archive.infolist():
            if info.is_dir():
                continue
            if predicate(info.filename.replace("\\", "/")):
                return archive.read(info)
        return None

    @classmethod
    def _find_byaf_portrait(
        cls,
        archive: zipfile.ZipFile,
        character_path: str,
        character_data: Dict[str, Any]
    ) -> Optional[bytes]:
        """
        Locate the portrait of a BYAF character.

        The character's first declared image path is resolved relative to
        the character file's directory; failing that, the first image under
        `<characterDir>/images/` is used.
        """
        char_dir = str(PurePosixPath(character_path.replace("\\", "/")).parent)
        if char_dir == ".":
            char_dir = ""

        try:
            image_path = ByafCharacter.model_validate(character_data).first_image_path()
        except ValidationError:
            image_path = None
        if image_path:
            full_path = f"{char_dir}/{image_path}" if char_dir else image_path
            data = cls._find_entry(archive, lambda name: name.lower() == full_path.lower())
            if data is not None:
                return data

        if char_dir:
            prefix = f"{char_dir}/images/".lower()
            return cls._find_entry(
                archive, lambda name: name.lower().startswith(prefix) and _is_image_name(name)
            )
        return None

    def _load_charx(self, path: Path) -> LoadOutcome:
        with zipfile.ZipFile(path) as archive:
            obj = None
            for card_name in CHARX_CARD_NAMES:
                raw = self._find_entry(archive, lambda name, n=card_name: PurePosixPath(name).name.lower() == n)
                if raw is not None:
                    obj = json.loads(raw.decode("utf-8-sig"))
                    break

            if obj is None:
                return (LoadResult.NO_DATA_FOUND, None)

            card = decode_first([CardFormat.TAVERN_V3, CardFormat.TAVERN_V2], obj, self.default_name)
            if card is None:
                return (LoadResult.INVALID_FORMAT, None)

            card.portrait_data = self._find_charx_portrait(archive)
            return (LoadResult.SUCCESS, card)

    @classmethod
    def _find_charx_portrait(cls, archive: zipfile.ZipFile) -> Optional[bytes]:
        """Well-known portrait names first, then any root image, then assets/."""
        data = cls._find_entry(
            archive, lambda name: PurePosixPath(name).name.lower() in CHARX_PORTRAIT_NAMES
        )
        if data is None:
            data = cls._find_entry(archive, lambda name: "/" not in name and _is_image_name(name))
        if data is None:
            data = cls._find_entry(
                archive, lambda name: name.lower().startswith("assets/") and _is_image_name(name)
            )
        return data

    # ===========================
    # Saving
    # ===========================

    def save(self, path: Union[str, Path], card: CharacterCard) -> bool:
        """
        Save a character card.

        Args:
            path: Destination; the extension selects the writer
            card: Card to save

        Returns:
            True on success, False on any failure
        """
        path = Path(path)
        saver = self._savers.get(path.suffix.lower())
        if saver is None:
            logger.error(f"Unsupported card file type for saving: {path.suffix}")
            return False

        try:
            saver(path, card)
        except Exception as e:
            logger.error(f"Failed to save card to {path}: {e}", exc_info=True)
            return False

        logger.info(f"Saved '{card.name}' to {path}")
        return True

    def to_json_text(self, document: Any) -> str:
        """Serialize a wire document with the configured JSON options."""
        return json.dumps(
            document,
            indent=self.config.export.json_indent,
            ensure_ascii=self.config.export.ensure_ascii,
        )

    def _write_bytes(self, path: Path, data: bytes) -> None:
        atomic_write_bytes(path, data, atomic=self.config.export.atomic_writes)

    def _write_text(self, path: Path, text: str) -> None:
        atomic_write_text(path, text, atomic=self.config.export.atomic_writes)

    def build_png(self, card: CharacterCard) -> bytes:
        """
        Embed the card into its portrait.

        The card is written as base64 V2 JSON under `chara`. Any stale
        `ccv3` chunk is dropped unless a fresh one is written too.

        Raises:
            ValueError: If the card has no PNG portrait
        """
        if not card.portrait_data or not PNGMetadataHandler.is_png(card.portrait_data):
            raise ValueError("Card has no PNG portrait to embed metadata into")

        chunks = {"chara": self._base64_json(encode_card(CardFormat.TAVERN_V2, card))}
        if self.config.png.write_ccv3:
            chunks["ccv3"] = self._base64_json(encode_card(CardFormat.TAVERN_V3, card))

        return PNGMetadataHandler.write_text_chunks(
            card.portrait_data,
            chunks,
            compress=self.config.png.compress_metadata,
            drop_keywords=("ccv3",),
        )

    def _base64_json(self, document: Any) -> str:
        return base64.b64encode(self.to_json_text(document).encode("utf-8")).decode("ascii")

    def _save_png(self, path: Path, card: CharacterCard) -> None:
        self._write_bytes(path, self.build_png(card))

    def _save_json(self, path: Path, card: CharacterCard) -> None:
        self._write_text(path, self.to_json_text(encode_card(CardFormat.TAVERN_V2, card)))

    def _save_yaml(self, path: Path, card: CharacterCard) -> None:
        document = encode_card(CardFormat.TEXT_GEN_WEBUI, card)
        self._write_text(path, yaml.safe_dump(document, allow_unicode=True, sort_keys=False))

    def _save_xml(self, path: Path, card: CharacterCard) -> None:
        self._write_text(path, encode_card(CardFormat.GINGER, card))

    def _save_charx(self, path: Path, card: CharacterCard) -> None:
        buffer = BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            archive.writestr("card.json", self.to_json_text(encode_card(CardFormat.TAVERN_V2, card)))
            if card.portrait_data:
                archive.writestr("avatar.png", card.portrait_data)
        self._write_bytes(path, buffer.getvalue())

    def _save_byaf(self, path: Path, card: CharacterCard) -> None:
        character_id = str(uuid.uuid4())
        character_dir = f"characters/{character_id}"
        character_path = f"{character_dir}/character.json"

        scenario = FaradayAdapter.to_byaf_scenario(card, character_id)
        scenario_path = "scenarios/scenario1.json" if scenario is not None else None

        buffer = BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            manifest = FaradayAdapter.to_byaf_manifest(card, character_path, scenario_path)
            archive.writestr("manifest.json", self.to_json_text(manifest))
            archive.writestr(
                character_path,
                self.to_json_text(FaradayAdapter.to_byaf_character(card, character_id)),
            )
            if scenario is not None:
                archive.writestr(scenario_path, self.to_json_text(scenario))
            if card.portrait_data:
                archive.writestr(f"{character_dir}/{BYAF_AVATAR_NAME}", card.portrait_data)
        self._write_bytes(path, buffer.getvalue())
