"""
Lorebook Converters
==================

Pure conversions between the canonical Lorebook and the vendor lorebook
shapes: embedded Tavern character books, SillyTavern World Books, Tavern V3
lorebook files, Agnaistic memory books, Backyard lore items and CSV.

The canonical model always holds one ordered entry list. Only the World
Book conversion translates to and from a keyed map.
"""

import csv
import io
import logging
from typing import Dict, List, Optional

from persona_engine.models import Lorebook, LorebookEntry
from .models import (
    CharacterBook,
    CharacterBookV3,
    CharacterBookEntry,
    CharacterBookEntryV3,
    TavernWorldBook,
    TavernWorldBookEntry,
    TavernLorebookV3,
    AgnaisticBook,
    AgnaisticBookEntry,
    FaradayLoreItem,
)

logger = logging.getLogger(__name__)

# World Book stores placement as an integer
POSITION_CODES: Dict[str, int] = {
    "before_char": 0,
    "after_char": 1,
    "before_authors_note": 2,
    "after_authors_note": 3,
    "at_depth": 4,
}
POSITION_NAMES: Dict[int, str] = {code: name for name, code in POSITION_CODES.items()}


def split_keys(text: str) -> List[str]:
    """Split a comma-separated key string, dropping blanks."""
    return [k.strip() for k in (text or "").split(",") if k.strip()]


def join_keys(keys: List[str]) -> str:
    return ", ".join(keys)


def _resolve_name(lorebook: Lorebook, default_name: Optional[str]) -> str:
    """Lorebook name, else the caller-supplied default."""
    if lorebook.name and lorebook.name.strip():
        return lorebook.name.strip()
    return default_name or ""


def _keyed_entries(lorebook: Lorebook) -> List[LorebookEntry]:
    """Entries that can be exported to key-driven formats."""
    return [e for e in lorebook.entries if e.keys]


# ===========================
# Embedded Tavern character book
# ===========================

def character_book_to_lorebook(book: CharacterBook) -> Lorebook:
    """Convert an embedded V2/V3 character book."""
    lorebook = Lorebook(
        name=book.name,
        description=book.description,
        scan_depth=book.scan_depth,
        token_budget=book.token_budget,
        recursive_scanning=book.recursive_scanning,
        extensions=dict(book.extensions),
    )
    for entry in book.entries:
        lorebook.entries.append(LorebookEntry(
            id=entry.id,
            keys=list(entry.keys),
            secondary_keys=list(entry.secondary_keys),
            name=entry.name,
            comment=entry.comment,
            content=entry.content,
            enabled=entry.enabled,
            constant=entry.constant,
            selective=entry.selective,
            case_sensitive=entry.case_sensitive,
            insertion_order=entry.insertion_order,
            priority=entry.priority,
            position=entry.position,
            use_regex=getattr(entry, "use_regex", False),
            extensions=dict(entry.extensions),
        ))
    return lorebook


def lorebook_to_character_book(lorebook: Lorebook, v3: bool = False) -> CharacterBook:
    """
    Convert to an embedded character book.

    Every entry is kept, keyless ones included. Ids are made unique on a
    copy; the input lorebook is not modified.
    """
    book = lorebook.model_copy(deep=True)
    book.assign_entry_ids()

    entry_cls = CharacterBookEntryV3 if v3 else CharacterBookEntry
    entries = []
    for entry in book.entries:
        fields = dict(
            id=entry.id,
            keys=list(entry.keys),
            secondary_keys=list(entry.secondary_keys),
            name=entry.name,
            comment=entry.comment,
            content=entry.content,
            enabled=entry.enabled,
            constant=entry.constant,
            selective=entry.selective,
            case_sensitive=entry.case_sensitive,
            insertion_order=entry.insertion_order,
            priority=entry.priority,
            position=entry.position,
            extensions=dict(entry.extensions),
        )
        if v3:
            fields["use_regex"] = entry.use_regex
        entries.append(entry_cls(**fields))

    book_cls = CharacterBookV3 if v3 else CharacterBook
    return book_cls(
        name=book.name,
        description=book.description,
        scan_depth=book.scan_depth,
        token_budget=book.token_budget,
        recursive_scanning=book.recursive_scanning,
        extensions=dict(book.extensions),
        entries=entries,
    )


# ===========================
# SillyTavern World Book
# ===========================

def lorebook_to_world_book(lorebook: Lorebook, default_name: Optional[str] = None) -> TavernWorldBook:
    """
    Convert to a World Book.

    Keyless entries are skipped. Emitted entries get uid 1..n and a
    displayIndex equal to their position among emitted entries,
    regardless of any id they carried before.
    """
    world_book = TavernWorldBook(
        name=_resolve_name(lorebook, default_name),
        description=lorebook.description,
        scan_depth=lorebook.scan_depth,
        token_budget=lorebook.token_budget,
        recursive_scanning=lorebook.recursive_scanning,
        extensions=dict(lorebook.extensions),
        entries={},
    )

    for index, entry in enumerate(_keyed_entries(lorebook)):
        entry_id = index + 1
        world_book.entries[str(entry_id)] = TavernWorldBookEntry(
            uid=entry_id,
            displayIndex=index,
            key=list(entry.keys),
            keysecondary=list(entry.secondary_keys),
            comment=entry.name or entry.comment or entry.keys[0],
            content=entry.content,
            constant=entry.constant,
            selective=entry.selective,
            order=entry.insertion_order,
            position=POSITION_CODES.get(entry.position, 0),
            disable=not entry.enabled,
            extensions=dict(entry.extensions),
        )

    return world_book


def world_book_to_lorebook(world_book: TavernWorldBook) -> Lorebook:
    """Convert a World Book; positive uids are preserved."""
    lorebook = Lorebook(
        name=world_book.name,
        description=world_book.description,
        scan_depth=world_book.scan_depth,
        token_budget=world_book.token_budget,
        recursive_scanning=world_book.recursive_scanning,
        extensions=dict(world_book.extensions),
    )

    # sorted() is stable, so entries without a displayIndex keep map order
    ordered = sorted(world_book.entries.values(), key=lambda e: e.displayIndex)
    for entry in ordered:
        # Export writes the first key when an entry has no name
        name = entry.comment if not entry.key or entry.comment != entry.key[0] else ""
        lorebook.entries.append(LorebookEntry(
            id=entry.uid if entry.uid > 0 else 0,
            keys=list(entry.key),
            secondary_keys=list(entry.keysecondary),
            name=name,
            content=entry.content,
            enabled=not entry.disable,
            constant=entry.constant,
            selective=entry.selective,
            insertion_order=entry.order,
            position=POSITION_NAMES.get(entry.position, "before_char"),
            extensions=dict(entry.extensions),
        ))

    lorebook.assign_entry_ids()
    return lorebook


# ===========================
# Tavern V3 lorebook file
# ===========================

def lorebook_to_v3_lorebook(lorebook: Lorebook, default_name: Optional[str] = None) -> TavernLorebookV3:
    """Convert to a standalone lorebook_v3 file; keyless entries skipped, ids 1..n."""
    keyed = Lorebook(entries=[e.model_copy(deep=True) for e in _keyed_entries(lorebook)])
    for index, entry in enumerate(keyed.entries):
        entry.id = index + 1
        if not entry.name:
            entry.name = join_keys(entry.keys)

    book = lorebook_to_character_book(keyed, v3=True)
    book.name = _resolve_name(lorebook, default_name)
    book.description = lorebook.description
    book.scan_depth = lorebook.scan_depth
    book.token_budget = lorebook.token_budget
    book.recursive_scanning = lorebook.recursive_scanning
    book.extensions = dict(lorebook.extensions)
    return TavernLorebookV3(data=book)


def v3_lorebook_to_lorebook(lorebook_v3: TavernLorebookV3) -> Lorebook:
    return character_book_to_lorebook(lorebook_v3.data)


# ===========================
# Agnaistic memory book
# ===========================

def invert_priorities(values: List[int]) -> List[int]:
    """
    Map sort order to Agnaistic priority and back.

    The lowest sort order becomes the highest priority within the same
    range, e.g. [1, 2, 3] -> [3, 2, 1]. Equal values are left alone. The
    mapping is its own inverse.

    This is high - (p - low), not (high - low) - (p - low): the latter
    shifts the range down to start at 0, giving [2, 1, 0].
    """
    if not values:
        return []
    low, high = min(values), max(values)
    if low == high:
        return list(values)
    return [high - (value - low) for value in values]


def lorebook_to_agnaistic_book(lorebook: Lorebook, default_name: Optional[str] = None) -> AgnaisticBook:
    """Convert to an Agnaistic memory book with inverted priorities."""
    keyed = _keyed_entries(lorebook)
    priorities = invert_priorities([e.insertion_order for e in keyed])

    entries = []
    for index, (entry, priority) in enumerate(zip(keyed, priorities)):
        entries.append(AgnaisticBookEntry(
            id=index + 1,
            name=entry.name or entry.keys[0],
            entry=entry.content,
            keywords=list(entry.keys),
            priority=priority,
            weight=int(entry.extensions.get("weight", 0) or 0),
            enabled=entry.enabled,
            comment=entry.comment,
            constant=entry.constant,
            selective=entry.selective,
            secondaryKeys=list(entry.secondary_keys),
            position=entry.position,
        ))

    return AgnaisticBook(
        name=_resolve_name(lorebook, default_name),
        description=lorebook.description,
        scanDepth=lorebook.scan_depth,
        tokenBudget=lorebook.token_budget,
        recursiveScanning=lorebook.recursive_scanning,
        entries=entries,
    )


def agnaistic_book_to_lorebook(book: AgnaisticBook) -> Lorebook:
    """Convert an Agnaistic memory book; priority becomes sort order."""
    orders = invert_priorities([e.priority for e in book.entries])
    lorebook = Lorebook(
        name=book.name,
        description=book.description,
        scan_depth=book.scanDepth,
        token_budget=book.tokenBudget,
        recursive_scanning=book.recursiveScanning,
    )
    for entry, order in zip(book.entries, orders):
        lorebook.entries.append(LorebookEntry(
            id=entry.id,
            keys=list(entry.keywords),
            secondary_keys=list(entry.secondaryKeys),
            name=entry.name,
            comment=entry.comment,
            content=entry.entry,
            enabled=entry.enabled,
            constant=entry.constant,
            selective=entry.selective,
            insertion_order=order,
            position=entry.position,
            extensions={"weight": entry.weight} if entry.weight else {},
        ))
    lorebook.assign_entry_ids()
    return lorebook


# ===========================
# Backyard lore items
# ===========================

def lore_items_to_lorebook(items: List[FaradayLoreItem]) -> Optional[Lorebook]:
    """Convert Backyard lore items; None when there are none."""
    if not items:
        return None
    lorebook = Lorebook()
    for index, item in enumerate(items):
        lorebook.entries.append(LorebookEntry(
            id=index + 1,
            keys=split_keys(item.key),
            content=item.value,
        ))
    return lorebook


def lorebook_to_lore_items(lorebook: Optional[Lorebook]) -> List[FaradayLoreItem]:
    if lorebook is None:
        return []
    return [
        FaradayLoreItem(key=join_keys(e.keys), value=e.content)
        for e in lorebook.entries
    ]


# ===========================
# CSV
# ===========================

def lorebook_to_csv_text(lorebook: Lorebook) -> str:
    """
    Render two quoted columns per keyed entry with CRLF line endings.

    Quotes are doubled; line breaks inside content become CRLF as well.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\r\n")
    for entry in _keyed_entries(lorebook):
        content = entry.content.replace("\r\n", "\n").replace("\r", "\n").replace("\n", "\r\n")
        writer.writerow([join_keys(entry.keys), content])
    return buffer.getvalue()


def csv_text_to_lorebook(text: str) -> Lorebook:
    """Parse CSV rows of (keys, content); rows without keys are skipped."""
    lorebook = Lorebook()
    reader = csv.reader(io.StringIO(text))
    for row in reader:
        if not row:
            continue
        keys = split_keys(row[0])
        if not keys:
            continue
        content = row[1] if len(row) > 1 else ""
        lorebook.entries.append(LorebookEntry(
            id=len(lorebook.entries) + 1,
            keys=keys,
            content=content.replace("\r\n", "\n").replace("\r", "\n"),
        ))
    logger.debug(f"Parsed {len(lorebook.entries)} lorebook entries from CSV")
    return lorebook
