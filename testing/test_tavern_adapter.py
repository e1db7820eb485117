"""
Tests for Tavern V1/V2/V3 conversion and the codec table.
"""

import pytest

from persona_engine.models import CardFormat, CharacterCard, Lorebook, LorebookEntry
from persona_engine.services.character_cards.converters import (
    CARD_CODECS,
    decode_card,
    decode_first,
    encode_card,
)
from persona_engine.services.character_cards.tavern_adapter import TavernAdapter


ARIA_V2 = {
    "spec": "chara_card_v2",
    "spec_version": "2.0",
    "data": {
        "name": "Aria",
        "persona": "A curious explorer.",
        "tags": ["fantasy", "explorer"],
        "character_book": {
            "entries": [
                {"id": 1, "keys": ["sword"], "content": "A magic sword.", "insertion_order": 100, "enabled": True}
            ]
        },
    },
}


class TestAriaExample:
    """A minimal V2 card survives a decode and re-encode."""

    def test_decode(self):
        card = decode_card(CardFormat.TAVERN_V2, ARIA_V2)

        assert card is not None
        assert card.name == "Aria"
        assert card.source_format == CardFormat.TAVERN_V2
        assert card.tags == {"fantasy", "explorer"}
        assert len(card.lorebook.entries) == 1
        assert card.lorebook.entries[0].keys == ["sword"]
        assert card.lorebook.entries[0].content == "A magic sword."

    def test_reencode_entry(self):
        card = decode_card(CardFormat.TAVERN_V2, ARIA_V2)
        encoded = encode_card(CardFormat.TAVERN_V2, card)

        entry = encoded["data"]["character_book"]["entries"][0]
        assert entry["id"] == 1
        assert entry["keys"] == ["sword"]
        assert entry["content"] == "A magic sword."
        assert entry["insertion_order"] == 100
        assert entry["enabled"] is True


class TestV2RoundTrip:
    """Canonical -> V2 -> canonical keeps every V2 field."""

    def test_round_trip(self, sample_card):
        card = TavernAdapter.from_v2(TavernAdapter.to_v2(sample_card))

        for field in ("name", "persona", "personality", "scenario", "greeting", "example",
                      "system", "post_history_instructions", "alternate_greetings",
                      "tags", "creator", "version", "creator_notes"):
            assert getattr(card, field) == getattr(sample_card, field), field

        assert card.lorebook.name == sample_card.lorebook.name
        assert [e.keys for e in card.lorebook.entries] == [e.keys for e in sample_card.lorebook.entries]
        assert [e.enabled for e in card.lorebook.entries] == [True, True, False]
        assert card.lorebook.entries[1].name == "The Tower"

    def test_stamps_schema_identifiers(self, sample_card):
        encoded = TavernAdapter.to_v2(sample_card)
        assert encoded["spec"] == "chara_card_v2"
        assert encoded["spec_version"] == "2.0"

    def test_tags_sorted(self, sample_card):
        assert TavernAdapter.to_v2(sample_card)["data"]["tags"] == ["explorer", "fantasy"]

    def test_empty_collections_and_missing_book(self):
        encoded = TavernAdapter.to_v2(CharacterCard(name="Bare"))
        data = encoded["data"]

        assert data["alternate_greetings"] == []
        assert data["tags"] == []
        assert "character_book" not in data

    def test_empty_lorebook_omitted(self):
        encoded = TavernAdapter.to_v2(CharacterCard(name="Bare", lorebook=Lorebook(name="empty")))
        assert "character_book" not in encoded["data"]

    def test_extensions_pass_through(self):
        obj = {"spec": "chara_card_v2", "data": {"name": "X", "extensions": {"depth_prompt": {"depth": 4}}}}
        card = TavernAdapter.from_v2(obj)
        assert TavernAdapter.to_v2(card)["data"]["extensions"] == {"depth_prompt": {"depth": 4}}

    def test_keyless_entries_kept_in_character_book(self):
        card = CharacterCard(
            name="K",
            lorebook=Lorebook(entries=[LorebookEntry(content="always on", constant=True)]),
        )
        entries = TavernAdapter.to_v2(card)["data"]["character_book"]["entries"]
        assert len(entries) == 1
        assert entries[0]["keys"] == []
        assert entries[0]["id"] == 1


class TestV2Validation:
    """Required fields and null handling."""

    def test_missing_data_fails(self):
        assert TavernAdapter.from_v2({"spec": "chara_card_v2"}) is None

    def test_entry_without_content_fails(self):
        obj = {
            "spec": "chara_card_v2",
            "data": {"name": "X", "character_book": {"entries": [
                {"keys": ["a"], "insertion_order": 1, "enabled": True}
            ]}},
        }
        assert TavernAdapter.from_v2(obj) is None

    def test_nulls_collapse_to_defaults(self):
        obj = {"spec": "chara_card_v2", "data": {
            "name": "N", "description": None, "tags": None, "alternate_greetings": None, "character_book": None,
        }}
        card = TavernAdapter.from_v2(obj)
        assert card.persona == ""
        assert card.tags == set()
        assert card.alternate_greetings == []
        assert card.lorebook is None

    def test_blank_name_becomes_unnamed(self):
        card = decode_card(CardFormat.TAVERN_V2, {"spec": "chara_card_v2", "data": {"name": "  "}})
        assert card.name == "Unnamed"
        assert card.spoken_name == "Unnamed"

    def test_default_name_is_configurable(self):
        card = decode_card(CardFormat.TAVERN_V2, {"spec": "chara_card_v2", "data": {}}, default_name="Nobody")
        assert card.name == "Nobody"

    def test_blank_name_never_encoded(self):
        assert TavernAdapter.to_v2(CharacterCard())["data"]["name"] == "Unnamed"


class TestV1:
    """Flat V1 cards are upgraded."""

    def test_from_v1(self):
        card = decode_card(CardFormat.TAVERN_V1, {
            "name": "Old", "description": "d", "personality": "p", "first_mes": "hi",
        })
        assert card.source_format == CardFormat.TAVERN_V1
        assert (card.persona, card.personality, card.greeting) == ("d", "p", "hi")
        assert card.system == ""
        assert card.lorebook is None

    def test_to_v1_is_flat(self, sample_card):
        encoded = TavernAdapter.to_v1(sample_card)
        assert "spec" not in encoded
        assert encoded["description"] == sample_card.persona


class TestV3:
    """V3 adds the nickname and regex keys."""

    def test_nickname_is_spoken_name(self):
        card = TavernAdapter.from_v3({"spec": "chara_card_v3", "data": {"name": "Aria", "nickname": "Ari"}})
        assert card.spoken_name == "Ari"
        assert card.source_format == CardFormat.TAVERN_V3

    def test_nickname_only_when_different(self, sample_card):
        sample_card.spoken_name = sample_card.name
        assert TavernAdapter.to_v3(sample_card)["data"]["nickname"] == ""

        sample_card.spoken_name = "Ari"
        assert TavernAdapter.to_v3(sample_card)["data"]["nickname"] == "Ari"

    def test_use_regex_round_trip(self):
        obj = {"spec": "chara_card_v3", "spec_version": "3.0", "data": {"name": "R", "character_book": {"entries": [
            {"id": 1, "keys": ["^dr(a|o)gon$"], "content": "c", "insertion_order": 1, "enabled": True, "use_regex": True}
        ]}}}
        card = TavernAdapter.from_v3(obj)
        assert card.lorebook.entries[0].use_regex is True

        encoded = TavernAdapter.to_v3(card)
        assert encoded["spec"] == "chara_card_v3"
        assert encoded["data"]["character_book"]["entries"][0]["use_regex"] is True


class TestCodecTable:
    """Dispatch through the strategy table."""

    def test_every_codec_encodes_sample(self, sample_card):
        for card_format, codec in CARD_CODECS.items():
            assert codec.encode(sample_card) is not None, card_format

    def test_unknown_format(self, sample_card):
        assert decode_card(CardFormat.UNKNOWN, {}) is None
        with pytest.raises(ValueError):
            encode_card(CardFormat.UNKNOWN, sample_card)

    def test_converter_exception_becomes_none(self):
        assert decode_card(CardFormat.TAVERN_V2, "not a dict") is None

    def test_decode_first_falls_through(self):
        obj = {"spec": "chara_card_v2", "data": {"name": "Second"}}
        card = decode_first([CardFormat.FARADAY, CardFormat.TAVERN_V2], obj)
        assert card.name == "Second"
        assert decode_first([CardFormat.FARADAY], obj) is None
