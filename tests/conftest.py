"""Shared fixtures: an on-disk dictionary layout and settings pointing at it.

Layout under ``dictionaries/``:

    alpha.mdx   colour -> @@@LINK=color, color, apple, apply, Apricot
    alpha.mdd   \\img\\logo.png, \\audio\\hello.spx
    alpha.css
    beta.mdx    colour (direct), apple, banana
    beta.js
    notes.txt   (ignored by discovery)
"""

from __future__ import annotations

from pathlib import Path

import pytest
from fake_backend import write_archive, write_dictionary

from dictbridge.config import LoggingSettings, Settings, StorageSettings, WorkerSettings

ALPHA_ENTRIES = {
    "colour": "@@@LINK=color",
    "color": "<p>alpha color</p>",
    "apple": "<p>alpha apple</p>",
    "apply": "<p>alpha apply</p>",
    "Apricot": "<p>alpha apricot</p>",
}

BETA_ENTRIES = {
    "colour": "<p>beta colour</p>",
    "apple": "<p>beta apple</p>",
    "banana": "<p>beta banana</p>",
}

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"
SPEEX_BYTES = b"Speex   fake-audio"


@pytest.fixture()
def dictionary_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "dictionaries"
    directory.mkdir()
    write_dictionary(directory / "alpha.mdx", ALPHA_ENTRIES)
    write_archive(
        directory / "alpha.mdd",
        {"\\img\\logo.png": PNG_BYTES, "\\audio\\hello.spx": SPEEX_BYTES},
    )
    (directory / "alpha.css").write_text("body { color: red; }", encoding="utf-8")
    write_dictionary(directory / "beta.mdx", BETA_ENTRIES)
    (directory / "beta.js").write_text("console.log('beta');", encoding="utf-8")
    (directory / "notes.txt").write_text("not a dictionary", encoding="utf-8")
    return directory


@pytest.fixture()
def settings(tmp_path: Path, dictionary_dir: Path) -> Settings:
    return Settings(
        data_dir=str(tmp_path / "data"),
        scan_paths=[str(dictionary_dir)],
        storage=StorageSettings(db_path=str(tmp_path / "data" / "dictbridge.db")),
        worker=WorkerSettings(reader_backend="fake_backend:FakeBackend"),
        logging=LoggingSettings(level="DEBUG", format="text"),
    )
