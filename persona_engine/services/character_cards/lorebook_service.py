"""
Lorebook Service
================

Exports a canonical Lorebook to the standalone lorebook file formats and
imports any of them back, detecting the format from the file contents.
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Tuple, Union

from pydantic import ValidationError

from persona_engine.config import EngineConfig
from persona_engine.models import Lorebook
from persona_engine.utils import atomic_write_text
from .format_detector import FormatDetector, LorebookFormat
from .lorebook_converters import (
    lorebook_to_world_book,
    world_book_to_lorebook,
    lorebook_to_v3_lorebook,
    v3_lorebook_to_lorebook,
    lorebook_to_agnaistic_book,
    agnaistic_book_to_lorebook,
    lorebook_to_csv_text,
    csv_text_to_lorebook,
)
from .models import TavernWorldBook, CharacterBookV3, TavernLorebookV3, AgnaisticBook

logger = logging.getLogger(__name__)


class LorebookLoadError(str, Enum):
    """Outcome of a lorebook import."""
    NO_ERROR = "no_error"
    FILE_ERROR = "file_error"
    INVALID_JSON = "invalid_json"
    UNKNOWN_FORMAT = "unknown_format"
    NO_DATA = "no_data"


class LorebookService:
    """Read and write standalone lorebook files."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    # ===========================
    # Export
    # ===========================

    @staticmethod
    def _default_name(path: Path, default_name: Optional[str]) -> str:
        """Caller's default name, else the destination file stem."""
        if default_name and default_name.strip():
            return default_name.strip()
        return path.stem

    def _write_json(self, path: Path, document: Any) -> bool:
        try:
            text = json.dumps(
                document,
                indent=self.config.export.json_indent,
                ensure_ascii=self.config.export.ensure_ascii,
            )
            atomic_write_text(path, text, atomic=self.config.export.atomic_writes)
            logger.info(f"Exported lorebook to {path}")
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to export lorebook to {path}: {e}")
            return False

    def export_world_book(self, lorebook: Lorebook, path: Union[str, Path], default_name: Optional[str] = None) -> bool:
        """Write a SillyTavern World Book. Entries without keys are skipped."""
        path = Path(path)
        world_book = lorebook_to_world_book(lorebook, self._default_name(path, default_name))
        return self._write_json(path, world_book.model_dump(mode="json", exclude_none=True))

    def export_v3_lorebook(self, lorebook: Lorebook, path: Union[str, Path], default_name: Optional[str] = None) -> bool:
        path = Path(path)
        lorebook_v3 = lorebook_to_v3_lorebook(lorebook, self._default_name(path, default_name))
        return self._write_json(path, lorebook_v3.model_dump(mode="json", exclude_none=True))

    def export_agnaistic_lorebook(self, lorebook: Lorebook, path: Union[str, Path], default_name: Optional[str] = None) -> bool:
        path = Path(path)
        book = lorebook_to_agnaistic_book(lorebook, self._default_name(path, default_name))
        return self._write_json(path, book.model_dump(mode="json", exclude_none=True))

    def export_csv(self, lorebook: Lorebook, path: Union[str, Path], default_name: Optional[str] = None) -> bool:
        """
        Write a two-column CSV (keys, content).

        The file is UTF-8 without BOM and always goes through a temporary
        file, whatever the atomic_writes setting says.
        """
        path = Path(path)
        try:
            atomic_write_text(path, lorebook_to_csv_text(lorebook), atomic=True)
            logger.info(f"Exported lorebook to {path}")
            return True
        except OSError as e:
            logger.error(f"Failed to export lorebook to {path}: {e}")
            return False

    def export(
        self,
        lorebook: Lorebook,
        path: Union[str, Path],
        lorebook_format: LorebookFormat = LorebookFormat.WORLD_BOOK,
        default_name: Optional[str] = None
    ) -> bool:
        """Export in the requested format."""
        exporters = {
            LorebookFormat.WORLD_BOOK: self.export_world_book,
            LorebookFormat.TAVERN_V3: self.export_v3_lorebook,
            LorebookFormat.AGNAISTIC: self.export_agnaistic_lorebook,
            LorebookFormat.CSV: self.export_csv,
        }
        exporter = exporters.get(lorebook_format)
        if exporter is None:
            logger.error(f"Cannot export lorebook as '{lorebook_format.value}'")
            return False
        return exporter(lorebook, path, default_name)

    # ===========================
    # Import
    # ===========================

    @staticmethod
    def _convert(lorebook_format: LorebookFormat, obj: Any) -> Optional[Lorebook]:
        try:
            if lorebook_format == LorebookFormat.WORLD_BOOK:
                return world_book_to_lorebook(TavernWorldBook.model_validate(obj))
            if lorebook_format == LorebookFormat.TAVERN_V3:
                book = CharacterBookV3.model_validate(FormatDetector.unwrap_lorebook(obj))
                return v3_lorebook_to_lorebook(TavernLorebookV3(data=book))
            if lorebook_format == LorebookFormat.AGNAISTIC:
                return agnaistic_book_to_lorebook(AgnaisticBook.model_validate(obj))
        except ValidationError as e:
            logger.warning(f"Invalid {lorebook_format.value} lorebook: {e.error_count()} validation error(s)")
        return None

    def import_lorebook(self, path: Union[str, Path]) -> Tuple[LorebookLoadError, Optional[Lorebook]]:
        """
        Import a lorebook file.

        `.csv` files are read as CSV; everything else is parsed as JSON and
        the format detected from its shape.

        Returns:
            Tuple of (LorebookLoadError, Lorebook or None)
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read lorebook file {path}: {e}")
            return (LorebookLoadError.FILE_ERROR, None)

        if path.suffix.lower() == ".csv":
            lorebook = csv_text_to_lorebook(text)
        else:
            try:
                obj = json.loads(text)
            except json.JSONDecodeError as e:
                logger.warning(f"Lorebook file {path} is not valid JSON: {e}")
                return (LorebookLoadError.INVALID_JSON, None)

            lorebook_format = FormatDetector.detect_lorebook(obj)
            if lorebook_format == LorebookFormat.UNKNOWN:
                logger.warning(f"Unrecognized lorebook format in {path}")
                return (LorebookLoadError.UNKNOWN_FORMAT, None)

            lorebook = self._convert(lorebook_format, obj)
            if lorebook is None:
                return (LorebookLoadError.UNKNOWN_FORMAT, None)
            logger.debug(f"Detected {lorebook_format.value} lorebook in {path}")

        if not lorebook.entries:
            logger.warning(f"Lorebook file {path} has no entries")
            return (LorebookLoadError.NO_DATA, None)

        if not lorebook.name:
            lorebook.name = path.stem

        logger.info(f"Imported {len(lorebook.entries)} lorebook entries from {path}")
        return (LorebookLoadError.NO_ERROR, lorebook)
