"""
Ginger Adapter
==============

Reads and writes the native Ginger XML card stored under the `ginger`
PNG keyword.

Only the card header, the first character's identity and the lorebook
are mapped. Ginger builds persona text from recipes, which are not part
of the interchange model, so the text fields stay empty on import.
"""

import logging
import xml.etree.ElementTree as ET
from typing import Any, Optional

from persona_engine.models import CardFormat, CharacterCard, Lorebook, LorebookEntry, DEFAULT_CARD_NAME
from .lorebook_converters import split_keys, join_keys

logger = logging.getLogger(__name__)


def _text(node: Optional[ET.Element], tag: str) -> str:
    if node is None:
        return ""
    child = node.find(tag)
    if child is None or child.text is None:
        return ""
    return child.text.strip()


def _add_text(parent: ET.Element, tag: str, text: str) -> None:
    if text:
        ET.SubElement(parent, tag).text = text


def _read_lorebook(node: ET.Element) -> Optional[Lorebook]:
    lorebook = Lorebook(name=_text(node, "Name"), description=_text(node, "Description"))
    entries = node.find("Entries")
    if entries is None:
        return None

    for entry_node in entries.findall("Entry"):
        try:
            order = int(entry_node.get("order", "100"))
        except ValueError:
            order = 100
        lorebook.entries.append(LorebookEntry(
            keys=split_keys(_text(entry_node, "Name")),
            content=_text(entry_node, "Value"),
            enabled=entry_node.get("enabled", "true").lower() != "false",
            insertion_order=order,
        ))

    if not lorebook.entries:
        return None
    lorebook.assign_entry_ids()
    return lorebook


class GingerAdapter:
    """Convert between Ginger XML and CharacterCard."""

    @staticmethod
    def is_ginger(obj: Any) -> bool:
        return isinstance(obj, str) and obj.lstrip().startswith("<")

    @staticmethod
    def from_ginger(xml_text: str) -> Optional[CharacterCard]:
        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as e:
            logger.warning(f"Invalid Ginger XML: {e}")
            return None

        if root.tag != "Ginger":
            logger.warning(f"Unexpected Ginger root element '{root.tag}'")
            return None

        header = root.find("Card")
        character = root.find("Character")

        card = CharacterCard(
            name=_text(character, "Name"),
            spoken_name=_text(character, "SpokenName"),
            gender=_text(character, "Gender") or None,
            creator=_text(header, "Creator"),
            creator_notes=_text(header, "Comment"),
            version=_text(header, "Version"),
            tags=set(split_keys(_text(header, "Tags"))),
            source_format=CardFormat.GINGER,
        )

        lorebook_node = root.find("Lorebook")
        if lorebook_node is not None:
            card.lorebook = _read_lorebook(lorebook_node)

        return card

    @staticmethod
    def to_ginger(card: CharacterCard) -> str:
        root = ET.Element("Ginger", {"version": "1"})

        header = ET.SubElement(root, "Card")
        _add_text(header, "Creator", card.creator)
        _add_text(header, "Comment", card.creator_notes)
        _add_text(header, "Version", card.version)
        _add_text(header, "Tags", join_keys(card.sorted_tags()))

        character = ET.SubElement(root, "Character")
        name = card.name.strip() or DEFAULT_CARD_NAME
        _add_text(character, "Name", name)
        _add_text(character, "SpokenName", card.spoken_name if card.spoken_name != name else "")
        _add_text(character, "Gender", card.gender or "")

        if card.lorebook is not None and card.lorebook.entries:
            book = ET.SubElement(root, "Lorebook")
            _add_text(book, "Name", card.lorebook.name)
            _add_text(book, "Description", card.lorebook.description)
            entries = ET.SubElement(book, "Entries")
            for entry in card.lorebook.entries:
                attributes = {"order": str(entry.insertion_order)}
                if not entry.enabled:
                    attributes["enabled"] = "false"
                node = ET.SubElement(entries, "Entry", attributes)
                ET.SubElement(node, "Name").text = join_keys(entry.keys)
                ET.SubElement(node, "Value").text = entry.content

        return ET.tostring(root, encoding="unicode")
