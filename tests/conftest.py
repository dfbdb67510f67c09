"""Root test configuration: an isolated working directory and a small sample site"""

from pathlib import Path

import pytest

from folio.config import Settings
from folio.core.layouts import load_layouts

from samples import DEFAULT_LAYOUT, POST_LAYOUT


@pytest.fixture(autouse=True)
def isolate(tmp_path, monkeypatch):
    """Run each test from a clean tmp directory with no FOLIO_* env vars."""
    for name in Settings.model_fields:
        monkeypatch.delenv(f"FOLIO_{name.upper()}", raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture(name="site")
def site_fixture(tmp_path) -> Path:
    """A site root with default/post layouts and an empty _posts directory."""
    layouts = tmp_path / "_layouts"
    layouts.mkdir()
    (layouts / "default.html").write_text(DEFAULT_LAYOUT)
    (layouts / "post.html").write_text(POST_LAYOUT)
    (tmp_path / "_posts").mkdir()
    return tmp_path


@pytest.fixture(name="write_post")
def write_post_fixture(site):
    """Write a document into the site's _posts directory and return its path."""
    def _write(name: str, text: str) -> Path:
        path = site / "_posts" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path
    return _write


@pytest.fixture(name="settings")
def settings_fixture() -> Settings:
    return Settings(workers=2)


@pytest.fixture(name="layouts")
def layouts_fixture(site, settings):
    return load_layouts(site / "_layouts", settings.max_layout_chain_depth)
