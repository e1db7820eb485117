"""
Character Card Wire Schemas
==========================

Pydantic models for each vendor format. These are plain data shapes; all
mapping to and from the canonical model lives in the adapters.

Null values in incoming JSON collapse to the field default here, at the
deserialization boundary, so the rest of the engine never sees None where
an empty string or list is meaningful.
"""

from enum import Enum
from typing import Optional, Dict, List, Any
from pydantic import BaseModel, ConfigDict, Field, model_validator


class WireModel(BaseModel):
    """Base for wire schemas: ignore unknown keys, treat null as absent."""

    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    @model_validator(mode='before')
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


# ===========================
# Tavern (SillyTavern) Formats
# ===========================

class TavernSpec(str, Enum):
    """Tavern card specification identifiers."""
    V2 = "chara_card_v2"
    V3 = "chara_card_v3"
    LOREBOOK_V3 = "lorebook_v3"


class TavernCardV1(WireModel):
    """Original flat Tavern card (no spec field)."""
    name: str = ""
    description: str = ""
    personality: str = ""
    scenario: str = ""
    first_mes: str = ""
    mes_example: str = ""


class CharacterBookEntry(WireModel):
    """World info / lorebook entry embedded in a V2 card."""
    id: int = 0
    keys: List[str] = Field(default_factory=list)
    secondary_keys: List[str] = Field(default_factory=list)
    comment: str = ""
    content: str  # required
    constant: bool = False
    selective: bool = False
    insertion_order: int  # required
    enabled: bool  # required
    position: str = "before_char"
    case_sensitive: bool = False
    name: str = ""
    priority: int = 10
    extensions: Dict[str, Any] = Field(default_factory=dict)


class CharacterBookEntryV3(CharacterBookEntry):
    """V3 lorebook entry adds regex keys."""
    use_regex: bool = False


class CharacterBook(WireModel):
    """Character lorebook / world info (V2)."""
    name: str = ""
    description: str = ""
    scan_depth: int = 50
    token_budget: int = 500
    recursive_scanning: bool = False
    extensions: Dict[str, Any] = Field(default_factory=dict)
    entries: List[CharacterBookEntry]  # required


class CharacterBookV3(CharacterBook):
    """Character lorebook (V3)."""
    entries: List[CharacterBookEntryV3]


class TavernCardV2Data(WireModel):
    """Tavern V2 card data structure."""
    name: str = ""
    description: str = ""
    personality: str = ""
    scenario: str = ""
    first_mes: str = ""
    mes_example: str = ""

    creator_notes: str = ""
    system_prompt: str = ""
    post_history_instructions: str = ""
    alternate_greetings: List[str] = Field(default_factory=list)
    character_book: Optional[CharacterBook] = None

    tags: List[str] = Field(default_factory=list)
    creator: str = ""
    character_version: str = ""
    extensions: Dict[str, Any] = Field(default_factory=dict)


class TavernCardV2(WireModel):
    """Complete Tavern V2 character card structure."""
    spec: str = TavernSpec.V2.value
    spec_version: str = "2.0"
    data: TavernCardV2Data  # required


class TavernAsset(WireModel):
    """V3 asset reference."""
    type: str = ""
    uri: str = ""
    name: str = ""
    ext: str = ""


class TavernCardV3Data(TavernCardV2Data):
    """Tavern V3 card data: V2 fields plus nickname, assets and dates."""
    character_book: Optional[CharacterBookV3] = None
    nickname: str = ""
    creator_notes_multilingual: Dict[str, str] = Field(default_factory=dict)
    source: List[str] = Field(default_factory=list)
    group_only_greetings: List[str] = Field(default_factory=list)
    assets: List[TavernAsset] = Field(default_factory=list)
    creation_date: Optional[int] = None
    modification_date: Optional[int] = None


class TavernCardV3(WireModel):
    """Complete Tavern V3 character card structure."""
    spec: str = TavernSpec.V3.value
    spec_version: str = "3.0"
    data: TavernCardV3Data


class TavernLorebookV3(WireModel):
    """Standalone V3 lorebook file."""
    spec: str = TavernSpec.LOREBOOK_V3.value
    data: CharacterBookV3


class TavernWorldBookEntry(WireModel):
    """SillyTavern World Info entry (keyed-map flavour)."""
    uid: int = 0
    key: List[str]  # required
    keysecondary: List[str] = Field(default_factory=list)
    comment: str = ""
    content: str  # required
    constant: bool = False
    selective: bool = False
    order: int = 100
    position: int = 0  # 0 before_char, 1 after_char, 2 before AN, 3 after AN, 4 at depth
    excludeRecursion: bool = False
    disable: bool = False
    addMemo: bool = True
    displayIndex: int = 0
    probability: int = 100
    useProbability: bool = True
    depth: int = 4
    selectiveLogic: int = 0
    group: str = ""
    extensions: Dict[str, Any] = Field(default_factory=dict)


class TavernWorldBook(WireModel):
    """SillyTavern World Book file; entries keyed by string id."""
    name: str = ""
    description: str = ""
    scan_depth: int = 50
    token_budget: int = 500
    recursive_scanning: bool = False
    entries: Dict[str, TavernWorldBookEntry]  # required
    extensions: Dict[str, Any] = Field(default_factory=dict)


# ===========================
# Faraday / Backyard AI Formats
# ===========================

class FaradayLoreItem(WireModel):
    """Backyard lore item; key holds a comma-separated key list."""
    key: str = ""
    value: str = ""


class FaradayCharacter(WireModel):
    """The nested 'character' object of a Faraday card."""
    id: str = ""
    aiDisplayName: str = ""
    aiName: str = ""
    aiPersona: str = ""
    scenario: str = ""
    basePrompt: str = ""
    customDialogue: str = ""
    firstMessage: str = ""
    createdAt: str = ""
    updatedAt: str = ""
    grammar: Optional[str] = None
    isNSFW: bool = False
    loreItems: List[FaradayLoreItem] = Field(default_factory=list)

    # Model parameters
    temperature: float = 1.2
    topK: int = 30
    topP: float = 0.9
    minP: float = 0.1
    repeatPenalty: float = 1.05


class FaradayCard(WireModel):
    """Faraday card, versions 1 through 4."""
    character: FaradayCharacter  # required
    version: int = 4


class ByafImage(WireModel):
    """Image reference inside a BYAF character file."""
    path: str = ""
    label: str = ""


class ByafCharacter(WireModel):
    """Flat character file used inside .byaf archives."""
    schemaVersion: int = 1
    id: str = ""
    name: str = ""
    displayName: str = ""
    persona: str = ""
    images: List[ByafImage] = Field(default_factory=list)
    loreItems: List[FaradayLoreItem] = Field(default_factory=list)
    isNSFW: bool = False
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None

    def first_image_path(self) -> Optional[str]:
        """Path of the first declared image, if any."""
        if self.images and self.images[0].path:
            return self.images[0].path
        return None


class ByafMessage(WireModel):
    """Scenario message attributed to a character."""
    characterID: str = ""
    text: str = ""


class ByafScenario(WireModel):
    """Scenario file referenced by a BYAF manifest."""
    schemaVersion: int = 1
    title: str = ""
    narrative: str = ""
    formattingInstructions: str = ""
    firstMessages: List[ByafMessage] = Field(default_factory=list)
    exampleMessages: List[ByafMessage] = Field(default_factory=list)


class ByafAuthor(WireModel):
    """Author block of a BYAF manifest."""
    name: str = ""
    backyardURL: str = ""


class ByafManifest(WireModel):
    """manifest.json at the root of a .byaf archive."""
    schemaVersion: int = 1
    characters: List[str] = Field(default_factory=list)
    scenarios: List[str] = Field(default_factory=list)
    author: Optional[ByafAuthor] = None


# ===========================
# Agnaistic Formats
# ===========================

class AgnaisticPersona(WireModel):
    """Persona block; 'text' kind keeps prose under attributes.text."""
    kind: str = "text"
    attributes: Dict[str, List[str]] = Field(default_factory=dict)


class AgnaisticBookEntry(WireModel):
    """Memory book entry. Higher priority means earlier insertion."""
    id: int = 0
    name: str = ""
    entry: str = ""
    keywords: List[str] = Field(default_factory=list)
    priority: int = 0
    weight: int = 0
    enabled: bool = True
    comment: str = ""
    constant: bool = False
    selective: bool = False
    secondaryKeys: List[str] = Field(default_factory=list)
    position: str = "before_char"


class AgnaisticBook(WireModel):
    """Agnaistic memory book."""
    kind: str = "memory"
    name: str = ""
    description: str = ""
    scanDepth: int = 50
    tokenBudget: int = 500
    recursiveScanning: bool = False
    entries: List[AgnaisticBookEntry] = Field(default_factory=list)


class AgnaisticCard(WireModel):
    """Agnaistic character export."""
    kind: str = "character"
    name: str = ""
    description: str = ""
    culture: str = ""
    tags: List[str] = Field(default_factory=list)
    scenario: str = ""
    greeting: str = ""
    sampleChat: str = ""
    persona: AgnaisticPersona = Field(default_factory=AgnaisticPersona)
    systemPrompt: str = ""
    postHistoryInstructions: str = ""
    alternateGreetings: List[str] = Field(default_factory=list)
    characterBook: Optional[AgnaisticBook] = None
    creator: str = ""
    characterVersion: str = ""
    extensions: Dict[str, Any] = Field(default_factory=dict)


# ===========================
# Legacy Formats
# ===========================

class PygmalionCard(WireModel):
    """Pygmalion / early Oobabooga JSON character."""
    char_name: str = ""
    char_persona: str = ""
    world_scenario: str = ""
    char_greeting: str = ""
    example_dialogue: str = ""


class TextGenWebUICard(WireModel):
    """text-generation-webui YAML character."""
    name: str = ""
    greeting: str = ""
    context: str = ""
    example_dialogue: str = ""
