"""Command-line entry point for Persona Engine."""

import io
import logging
import sys
import argparse
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from persona_engine.config import ConfigLoader, ConfigLoadError, EngineConfig
from persona_engine.services.character_cards import (
    CharacterCardService,
    FormatDetector,
    LoadResult,
    LorebookFormat,
    LorebookLoadError,
    LorebookService,
    PNGMetadataHandler,
)

logger = logging.getLogger(__name__)

EXPORT_FORMATS = {
    "worldbook": LorebookFormat.WORLD_BOOK,
    "v3": LorebookFormat.TAVERN_V3,
    "agnaistic": LorebookFormat.AGNAISTIC,
    "csv": LorebookFormat.CSV,
}


def setup_logging(debug: bool = False, log_dir: Path = Path("data/logs")) -> Optional[Path]:
    """
    Configure logging.

    Returns the debug log file path when debug mode writes one.
    """
    # Force UTF-8 encoding for stdout/stderr on Windows
    if sys.platform == 'win32':
        sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
        sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')

    handlers = [logging.StreamHandler(sys.stderr)]

    log_file = None
    if debug:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"persona_engine_{timestamp}.log"

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(file_handler)

    # Root stays at WARNING so third-party libraries stay quiet
    logging.basicConfig(
        level=logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )

    logging.getLogger('persona_engine').setLevel(logging.DEBUG if debug else logging.INFO)
    logging.getLogger('PIL').setLevel(logging.WARNING)

    if log_file:
        logger.info(f"Debug log file: {log_file}")
    return log_file


def _load_card(service: CharacterCardService, path: str):
    result, card = service.load(path)
    if result != LoadResult.SUCCESS:
        print(f"Could not load {path}: {result.value}")
        return None
    return card


def cmd_inspect(args, config: EngineConfig) -> int:
    service = CharacterCardService(config)
    card = _load_card(service, args.file)
    if card is None:
        return 1

    print(f"Name:         {card.name}")
    if card.spoken_name and card.spoken_name != card.name:
        print(f"Spoken name:  {card.spoken_name}")
    print(f"Format:       {FormatDetector.get_format_name(card.source_format)}")
    if card.creator:
        print(f"Creator:      {card.creator}")
    if card.version:
        print(f"Version:      {card.version}")
    if card.tags:
        print(f"Tags:         {', '.join(card.sorted_tags())}")
    print(f"Greetings:    {1 if card.greeting else 0} + {len(card.alternate_greetings)} alternate")

    entries = len(card.lorebook.entries) if card.lorebook else 0
    print(f"Lorebook:     {entries} entries")

    image = PNGMetadataHandler.describe_image(card.portrait_data) if card.portrait_data else None
    if image:
        print(f"Portrait:     {image.format} {image.width}x{image.height}")
    else:
        print("Portrait:     (none)")
    return 0


def cmd_chunks(args, config: EngineConfig) -> int:
    try:
        chunks = PNGMetadataHandler.read_text_chunks_from_file(args.file)
    except OSError:
        print(f"Could not read {args.file}")
        return 1

    if not chunks:
        print("No text chunks found")
        return 0
    for keyword, text in chunks.items():
        print(f"{keyword:20} {len(text):8} chars")
    return 0


def cmd_convert(args, config: EngineConfig) -> int:
    service = CharacterCardService(config)
    card = _load_card(service, args.source)
    if card is None:
        return 1

    if not service.save(args.destination, card):
        print(f"Could not save {args.destination}")
        return 1
    print(f"Converted '{card.name}' to {args.destination}")
    return 0


def cmd_export_lorebook(args, config: EngineConfig) -> int:
    card = _load_card(CharacterCardService(config), args.card)
    if card is None:
        return 1
    if card.lorebook is None or not card.lorebook.entries:
        print(f"'{card.name}' has no lorebook")
        return 1

    service = LorebookService(config)
    if not service.export(card.lorebook, args.destination, EXPORT_FORMATS[args.format], default_name=card.name):
        print(f"Could not export lorebook to {args.destination}")
        return 1
    print(f"Exported {len(card.lorebook.entries)} entries to {args.destination}")
    return 0


def cmd_import_lorebook(args, config: EngineConfig) -> int:
    error, lorebook = LorebookService(config).import_lorebook(args.file)
    if error != LorebookLoadError.NO_ERROR:
        print(f"Could not import {args.file}: {error.value}")
        return 1

    print(f"Lorebook: {lorebook.name}")
    for entry in lorebook.entries:
        state = "" if entry.enabled else " (disabled)"
        print(f"  [{entry.id}] {', '.join(entry.keys)}{state}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="persona-engine",
        description="Convert character cards and lorebooks between formats"
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        default=None,
        help="Engine config file (default: config/engine.yaml)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Verbose logging with a timestamped log file"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    inspect_parser = subparsers.add_parser("inspect", help="Show a summary of a card")
    inspect_parser.add_argument("file")
    inspect_parser.set_defaults(func=cmd_inspect)

    chunks_parser = subparsers.add_parser("chunks", help="List PNG text chunks")
    chunks_parser.add_argument("file")
    chunks_parser.set_defaults(func=cmd_chunks)

    convert_parser = subparsers.add_parser("convert", help="Convert a card; formats follow the file extensions")
    convert_parser.add_argument("source")
    convert_parser.add_argument("destination")
    convert_parser.set_defaults(func=cmd_convert)

    export_parser = subparsers.add_parser("export-lorebook", help="Export a card's lorebook")
    export_parser.add_argument("card")
    export_parser.add_argument("destination")
    export_parser.add_argument(
        "--format", "-f",
        choices=sorted(EXPORT_FORMATS),
        default="worldbook",
        help="Lorebook format (default: worldbook)"
    )
    export_parser.set_defaults(func=cmd_export_lorebook)

    import_parser = subparsers.add_parser("import-lorebook", help="Read a lorebook file")
    import_parser.add_argument("file")
    import_parser.set_defaults(func=cmd_import_lorebook)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = ConfigLoader().load_engine_config(args.config)
    except ConfigLoadError as e:
        print(e)
        return 1

    setup_logging(debug=args.debug or config.logging.debug, log_dir=config.logging.log_dir)
    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
