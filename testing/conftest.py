"""Shared fixtures for the character card tests."""

import base64
import json
from io import BytesIO

import pytest
from PIL import Image

from persona_engine.models import CharacterCard, Lorebook, LorebookEntry


def make_png(size=(4, 4), color=(200, 40, 40)) -> bytes:
    """A small real PNG produced by Pillow."""
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def encode_payload(document) -> str:
    """Base64 JSON payload as stored in PNG card chunks."""
    return base64.b64encode(json.dumps(document).encode("utf-8")).decode("ascii")


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def sample_lorebook() -> Lorebook:
    return Lorebook(
        name="Aria's World",
        entries=[
            LorebookEntry(id=1, keys=["sword", "blade"], content="A magic sword.", insertion_order=1),
            LorebookEntry(id=2, keys=["tower"], name="The Tower", content="A ruined tower.", insertion_order=2),
            LorebookEntry(id=3, keys=["river"], content="A cold river.", insertion_order=3, enabled=False),
        ],
    )


@pytest.fixture
def sample_card(png_bytes, sample_lorebook) -> CharacterCard:
    return CharacterCard(
        name="Aria",
        persona="A curious explorer.",
        personality="Bold, kind",
        scenario="Aria is mapping the northern ruins.",
        greeting="Oh! A traveler!",
        example="<START>\n{{user}}: Hi\n{{char}}: Hello there.",
        system="Stay in character.",
        post_history_instructions="Keep replies short.",
        alternate_greetings=["Welcome back.", "Who goes there?"],
        tags={"fantasy", "explorer"},
        creator="mapmaker",
        version="1.2",
        creator_notes="Works best with long contexts.",
        lorebook=sample_lorebook,
        portrait_data=png_bytes,
    )
