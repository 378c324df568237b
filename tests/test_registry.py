"""Tests for provider plugin discovery."""

from registry import load_sources


def test_bundled_providers_are_discovered() -> None:
    sources = load_sources()
    assert {"animesama", "jikan", "mangadex"} <= set(sources)
    assert "base" not in sources


def test_sources_are_registered_under_their_name() -> None:
    for name, source in load_sources().items():
        assert source.name == name
        assert source.base_url.startswith("http")
