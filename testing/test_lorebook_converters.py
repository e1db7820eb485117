"""
Tests for lorebook conversions.

Tests cover:
- Agnaistic priority inversion
- World Book key filtering, id assignment and field mapping
- Tavern V3 lorebook files
- CSV text output and parsing
- Embedded character books
"""

import pytest

from persona_engine.models import Lorebook, LorebookEntry
from persona_engine.services.character_cards.lorebook_converters import (
    POSITION_CODES,
    invert_priorities,
    lorebook_to_world_book,
    world_book_to_lorebook,
    lorebook_to_v3_lorebook,
    v3_lorebook_to_lorebook,
    lorebook_to_agnaistic_book,
    agnaistic_book_to_lorebook,
    lorebook_to_character_book,
    lore_items_to_lorebook,
    lorebook_to_lore_items,
    lorebook_to_csv_text,
    csv_text_to_lorebook,
    split_keys,
)
from persona_engine.services.character_cards.models import TavernWorldBook, FaradayLoreItem


@pytest.fixture
def mixed_lorebook() -> Lorebook:
    """Keyed entries with stale ids around a keyless one."""
    return Lorebook(
        name="Mixed",
        entries=[
            LorebookEntry(id=7, keys=["alpha"], content="A"),
            LorebookEntry(id=8, keys=[], content="no keys"),
            LorebookEntry(id=9, keys=["gamma", "delta"], comment="note", content="G"),
        ],
    )


class TestPriorityInversion:
    """Sort order <-> Agnaistic priority."""

    def test_reverses_range(self):
        assert invert_priorities([1, 2, 3]) == [3, 2, 1]

    def test_equal_values_unchanged(self):
        assert invert_priorities([5, 5, 5]) == [5, 5, 5]

    def test_offset_range(self):
        assert invert_priorities([10, 40, 20]) == [40, 10, 30]

    def test_is_involution(self):
        values = [3, 100, 7, 42]
        assert invert_priorities(invert_priorities(values)) == values

    def test_empty(self):
        assert invert_priorities([]) == []

    def test_agnaistic_round_trip(self, sample_lorebook):
        book = lorebook_to_agnaistic_book(sample_lorebook)
        assert [e.priority for e in book.entries] == [3, 2, 1]

        back = agnaistic_book_to_lorebook(book)
        assert [e.insertion_order for e in back.entries] == [1, 2, 3]
        assert [e.keys for e in back.entries] == [e.keys for e in sample_lorebook.entries]


class TestWorldBook:
    """Keyed-map World Book export and import."""

    def test_keyless_entries_skipped(self, mixed_lorebook):
        world_book = lorebook_to_world_book(mixed_lorebook)
        assert len(world_book.entries) == 2
        assert all(entry.key for entry in world_book.entries.values())

    def test_sequential_ids_ignore_prior_ids(self, mixed_lorebook):
        world_book = lorebook_to_world_book(mixed_lorebook)
        assert list(world_book.entries) == ["1", "2"]
        assert [e.uid for e in world_book.entries.values()] == [1, 2]
        assert [e.displayIndex for e in world_book.entries.values()] == [0, 1]

    def test_comment_fallback(self, sample_lorebook, mixed_lorebook):
        comments = [e.comment for e in lorebook_to_world_book(sample_lorebook).entries.values()]
        assert comments == ["sword", "The Tower", "river"]

        comments = [e.comment for e in lorebook_to_world_book(mixed_lorebook).entries.values()]
        assert comments == ["alpha", "note"]

    def test_disabled_and_position(self, sample_lorebook):
        sample_lorebook.entries[0].position = "at_depth"
        entries = list(lorebook_to_world_book(sample_lorebook).entries.values())
        assert entries[0].position == POSITION_CODES["at_depth"] == 4
        assert [e.disable for e in entries] == [False, False, True]

    def test_name_defaulting(self, sample_lorebook):
        sample_lorebook.name = ""
        assert lorebook_to_world_book(sample_lorebook, default_name="Aria").name == "Aria"
        assert lorebook_to_world_book(sample_lorebook).name == ""

    def test_serialized_entries_are_an_object(self, sample_lorebook):
        dumped = lorebook_to_world_book(sample_lorebook).model_dump(mode="json")
        assert isinstance(dumped["entries"], dict)
        assert dumped["entries"]["1"]["key"] == ["sword", "blade"]

    def test_import_orders_by_display_index(self):
        world_book = TavernWorldBook.model_validate({"name": "WB", "entries": {
            "10": {"uid": 10, "key": ["late"], "content": "b", "displayIndex": 1, "position": 1},
            "3": {"uid": 3, "key": ["early"], "content": "a", "displayIndex": 0, "disable": True},
        }})
        lorebook = world_book_to_lorebook(world_book)

        assert [e.keys for e in lorebook.entries] == [["early"], ["late"]]
        assert [e.id for e in lorebook.entries] == [3, 10]
        assert lorebook.entries[0].enabled is False
        assert lorebook.entries[1].position == "after_char"

    def test_import_ignores_first_key_comment(self):
        world_book = TavernWorldBook.model_validate({"entries": {
            "1": {"uid": 1, "key": ["sword", "blade"], "comment": "sword", "content": "a"},
            "2": {"uid": 2, "key": ["tower"], "comment": "The Tower", "content": "b"},
        }})
        entries = world_book_to_lorebook(world_book).entries
        assert [e.name for e in entries] == ["", "The Tower"]

    def test_comment_round_trip(self, sample_lorebook):
        once = lorebook_to_world_book(sample_lorebook)
        twice = lorebook_to_world_book(world_book_to_lorebook(once))
        assert [e.comment for e in twice.entries.values()] == ["sword", "The Tower", "river"]
        assert [e.name for e in world_book_to_lorebook(once).entries] == [
            e.name for e in sample_lorebook.entries
        ]

    def test_import_renumbers_missing_uids(self):
        world_book = TavernWorldBook.model_validate({"entries": {
            "a": {"key": ["x"], "content": "1"},
            "b": {"key": ["y"], "content": "2"},
        }})
        assert [e.id for e in world_book_to_lorebook(world_book).entries] == [1, 2]


class TestV3Lorebook:
    """Standalone lorebook_v3 files."""

    def test_export(self, mixed_lorebook):
        lorebook_v3 = lorebook_to_v3_lorebook(mixed_lorebook)
        dumped = lorebook_v3.model_dump(mode="json")

        assert dumped["spec"] == "lorebook_v3"
        assert dumped["data"]["name"] == "Mixed"
        assert [e["id"] for e in dumped["data"]["entries"]] == [1, 2]
        assert [e["name"] for e in dumped["data"]["entries"]] == ["alpha", "gamma, delta"]
        assert "use_regex" in dumped["data"]["entries"][0]

    def test_export_does_not_touch_input(self, mixed_lorebook):
        lorebook_to_v3_lorebook(mixed_lorebook)
        assert [e.id for e in mixed_lorebook.entries] == [7, 8, 9]
        assert mixed_lorebook.entries[0].name == ""

    def test_round_trip(self, sample_lorebook):
        back = v3_lorebook_to_lorebook(lorebook_to_v3_lorebook(sample_lorebook))
        assert back.name == sample_lorebook.name
        assert [e.content for e in back.entries] == [e.content for e in sample_lorebook.entries]


class TestCsv:
    """Two-column CSV with CRLF line endings."""

    def test_exact_text(self):
        lorebook = Lorebook(entries=[
            LorebookEntry(keys=["sword", "blade"], content='A "magic"\nsword.'),
            LorebookEntry(keys=[], content="skipped"),
            LorebookEntry(keys=["tower"], content="Tall."),
        ])
        assert lorebook_to_csv_text(lorebook) == (
            '"sword, blade","A ""magic""\r\nsword."\r\n'
            '"tower","Tall."\r\n'
        )

    def test_parse(self):
        lorebook = csv_text_to_lorebook('"sword, blade","A ""magic""\r\nsword."\r\n"","orphan"\r\n"tower","Tall."\r\n')

        assert [e.keys for e in lorebook.entries] == [["sword", "blade"], ["tower"]]
        assert lorebook.entries[0].content == 'A "magic"\nsword.'
        assert [e.id for e in lorebook.entries] == [1, 2]

    def test_parse_single_column(self):
        lorebook = csv_text_to_lorebook("lonely\n")
        assert lorebook.entries[0].keys == ["lonely"]
        assert lorebook.entries[0].content == ""

    def test_round_trip(self, sample_lorebook):
        back = csv_text_to_lorebook(lorebook_to_csv_text(sample_lorebook))
        assert [(e.keys, e.content) for e in back.entries] == [
            (e.keys, e.content) for e in sample_lorebook.entries
        ]


class TestCharacterBook:
    """Embedded Tavern character book."""

    def test_keeps_keyless_entries(self, mixed_lorebook):
        book = lorebook_to_character_book(mixed_lorebook)
        assert len(book.entries) == 3
        assert [e.id for e in book.entries] == [7, 8, 9]

    def test_duplicate_ids_renumbered_on_copy(self):
        lorebook = Lorebook(entries=[
            LorebookEntry(id=1, keys=["a"], content="a"),
            LorebookEntry(id=1, keys=["b"], content="b"),
        ])
        book = lorebook_to_character_book(lorebook)

        assert [e.id for e in book.entries] == [1, 2]
        assert [e.id for e in lorebook.entries] == [1, 1]

    def test_v3_entries_carry_use_regex(self):
        lorebook = Lorebook(entries=[LorebookEntry(keys=["^a$"], content="a", use_regex=True)])
        assert lorebook_to_character_book(lorebook, v3=True).entries[0].use_regex is True


class TestLoreItems:
    """Backyard comma-joined lore items."""

    def test_to_lore_items(self, sample_lorebook):
        items = lorebook_to_lore_items(sample_lorebook)
        assert items[0] == FaradayLoreItem(key="sword, blade", value="A magic sword.")
        assert lorebook_to_lore_items(None) == []

    def test_from_lore_items(self):
        lorebook = lore_items_to_lorebook([FaradayLoreItem(key=" a ,b,, ", value="v")])
        assert lorebook.entries[0].keys == ["a", "b"]
        assert lore_items_to_lorebook([]) is None

    def test_split_keys(self):
        assert split_keys("") == []
        assert split_keys("one") == ["one"]
