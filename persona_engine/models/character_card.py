"""
Canonical Character Card Model
==============================

The in-memory representation every wire format is converted to and from.
"""

from enum import Enum
from typing import Optional, Dict, List, Set, Any
from pydantic import BaseModel, Field


DEFAULT_CARD_NAME = "Unnamed"


class CardFormat(str, Enum):
    """Source format a card was decoded from."""
    UNKNOWN = "unknown"
    TAVERN_V1 = "tavern_v1"
    TAVERN_V2 = "tavern_v2"
    TAVERN_V3 = "tavern_v3"
    FARADAY = "faraday"
    GINGER = "ginger"
    AGNAISTIC = "agnaistic"
    PYGMALION = "pygmalion"
    TEXT_GEN_WEBUI = "text_gen_webui"


class LorebookEntry(BaseModel):
    """A single keyed lorebook entry."""
    id: int = 0  # 0 means unassigned
    keys: List[str] = Field(default_factory=list)
    secondary_keys: List[str] = Field(default_factory=list)
    name: str = ""
    comment: str = ""
    content: str = ""
    enabled: bool = True
    constant: bool = False
    selective: bool = False
    case_sensitive: bool = False
    insertion_order: int = 100
    priority: int = 10
    position: str = "before_char"
    use_regex: bool = False
    extensions: Dict[str, Any] = Field(default_factory=dict)


class Lorebook(BaseModel):
    """Ordered collection of lorebook entries."""
    name: str = ""
    description: str = ""
    scan_depth: int = 50
    token_budget: int = 500
    recursive_scanning: bool = False
    entries: List[LorebookEntry] = Field(default_factory=list)
    extensions: Dict[str, Any] = Field(default_factory=dict)

    def assign_entry_ids(self) -> None:
        """
        Make entry ids unique.

        Existing ids are kept when they are all positive and distinct;
        otherwise every entry is renumbered 1..n in list order.
        """
        ids = [e.id for e in self.entries]
        if all(i > 0 for i in ids) and len(set(ids)) == len(ids):
            return
        for index, entry in enumerate(self.entries):
            entry.id = index + 1


class CharacterCard(BaseModel):
    """A loaded character card with all its data."""
    name: str = ""
    spoken_name: str = ""
    gender: Optional[str] = None
    creator: str = ""
    version: str = ""
    creator_notes: str = ""
    tags: Set[str] = Field(default_factory=set)

    # Character content
    persona: str = ""
    personality: str = ""
    scenario: str = ""
    greeting: str = ""
    example: str = ""
    system: str = ""
    post_history_instructions: str = ""
    alternate_greetings: List[str] = Field(default_factory=list)

    lorebook: Optional[Lorebook] = None
    portrait_data: Optional[bytes] = None

    # User settings
    user_placeholder: str = "User"
    user_gender: Optional[str] = None

    notes: str = ""
    source_format: CardFormat = CardFormat.UNKNOWN

    # Unrecognized vendor data carried through Tavern round trips
    extensions: Dict[str, Any] = Field(default_factory=dict)

    def ensure_name(self, default_name: str = DEFAULT_CARD_NAME) -> None:
        """Replace a blank name with the default."""
        if not self.name or not self.name.strip():
            self.name = default_name
        if not self.spoken_name:
            self.spoken_name = self.name

    def sorted_tags(self) -> List[str]:
        """Tags in a stable order for serialization."""
        return sorted(self.tags)
