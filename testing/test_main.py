"""
Tests for the command-line interface.
"""

import json

import pytest

from persona_engine import main as cli
from persona_engine.services.character_cards import CharacterCardService


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda debug=False, log_dir=None: None)


@pytest.fixture
def card_png(tmp_path, sample_card):
    path = tmp_path / "aria.png"
    assert CharacterCardService().save(path, sample_card)
    return path


def run(*argv):
    return cli.main(["--config", "does-not-exist.yaml", *argv])


def test_inspect(card_png, capsys):
    assert run("inspect", str(card_png)) == 0
    out = capsys.readouterr().out

    assert "Aria" in out
    assert "Tavern V2" in out
    assert "explorer, fantasy" in out
    assert "3 entries" in out
    assert "PNG 4x4" in out


def test_inspect_missing_file(tmp_path, capsys):
    assert run("inspect", str(tmp_path / "none.png")) == 1
    assert "file_not_found" in capsys.readouterr().out


def test_chunks(card_png, capsys):
    assert run("chunks", str(card_png)) == 0
    assert "chara" in capsys.readouterr().out


def test_convert(card_png, tmp_path, capsys):
    destination = tmp_path / "aria.json"
    assert run("convert", str(card_png), str(destination)) == 0
    assert json.loads(destination.read_text())["data"]["name"] == "Aria"


def test_convert_to_png_without_portrait(tmp_path, capsys):
    source = tmp_path / "plain.json"
    source.write_text(json.dumps({"spec": "chara_card_v2", "data": {"name": "Plain"}}))
    assert run("convert", str(source), str(tmp_path / "plain.png")) == 1
    assert "Could not save" in capsys.readouterr().out


def test_export_and_import_lorebook(card_png, tmp_path, capsys):
    destination = tmp_path / "lore.csv"
    assert run("export-lorebook", str(card_png), str(destination), "--format", "csv") == 0
    assert destination.read_bytes().startswith(b'"sword, blade"')

    assert run("import-lorebook", str(destination)) == 0
    out = capsys.readouterr().out
    assert "Lorebook: lore" in out
    assert "[3] river" in out


def test_export_lorebook_world_book_named_after_card(card_png, tmp_path):
    destination = tmp_path / "world.json"
    assert run("export-lorebook", str(card_png), str(destination)) == 0
    assert json.loads(destination.read_text())["name"] == "Aria's World"


def test_import_lorebook_error(tmp_path, capsys):
    bad = tmp_path / "bad.json"
    bad.write_text("{")
    assert run("import-lorebook", str(bad)) == 1
    assert "invalid_json" in capsys.readouterr().out


def test_bad_config(tmp_path, capsys):
    config_file = tmp_path / "engine.yaml"
    config_file.write_text("export:\n  json_indent: 100\n")
    assert cli.main(["--config", str(config_file), "chunks", "x.png"]) == 1
    assert "json_indent" in capsys.readouterr().out
