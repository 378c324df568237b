"""Tests for synthetic episode/chapter ids."""

import pytest

from identifiers import EpisodeRef, build_episode_id, build_id, normalize_language, parse_episode_id
from models import Unit


def test_build_episode_id_with_season() -> None:
    assert build_episode_id("one-piece", 1, 12, "vostfr") == "one-piece-s1-e12-vostfr"


def test_build_episode_id_elides_unknown_season() -> None:
    assert build_episode_id("naruto", None, 3, "vf") == "naruto-e3-vf"


def test_build_is_deterministic_and_normalizes_language() -> None:
    first = build_episode_id("demon-slayer", 2, 5, "VF")
    second = build_episode_id("demon-slayer", 2, 5, " vf ")
    assert first == second == "demon-slayer-s2-e5-vf"


def test_chapter_ids_use_their_own_marker() -> None:
    episode_id = build_id("a1b2c3d4-0000-4f4f-9999-abcdefabcdef", 1, 7, "en", Unit.CHAPTER)
    assert episode_id == "a1b2c3d4-0000-4f4f-9999-abcdefabcdef-s1-c7-en"
    ref = parse_episode_id(episode_id)
    assert ref.unit == Unit.CHAPTER
    assert ref.title_id == "a1b2c3d4-0000-4f4f-9999-abcdefabcdef"
    assert ref.number == 7


@pytest.mark.parametrize(
    "title_id, season, number, language",
    [
        ("one-piece", 1, 12, "vostfr"),
        ("tis-time-for-torture-princess", 1, 12, "vostfr"),
        ("naruto", None, 3, "vf"),
        ("86", 2, 1, "vostfr"),
    ],
)
def test_parse_recovers_every_component(title_id, season, number, language) -> None:
    ref = parse_episode_id(build_episode_id(title_id, season, number, language))
    assert ref == EpisodeRef(title_id=title_id, season=season, number=number, language=language)


@pytest.mark.parametrize("bad", ["", "one-piece", "one-piece-episode-12-vostfr", "one-piece-s1-e12"])
def test_parse_rejects_foreign_ids(bad: str) -> None:
    with pytest.raises(ValueError):
        parse_episode_id(bad)


@pytest.mark.parametrize(
    "args",
    [
        ("", 1, 1, "vf"),
        ("naruto", 1, 0, "vf"),
        ("naruto", 0, 1, "vf"),
        ("naruto", 1, 1, ""),
        ("naruto", 1, 1, "--"),
    ],
)
def test_build_rejects_invalid_components(args) -> None:
    with pytest.raises(ValueError):
        build_episode_id(*args)


def test_language_codes_are_reduced_to_id_safe_characters() -> None:
    assert normalize_language(" PT-BR ") == "ptbr"
    assert build_episode_id("naruto", 1, 1, "vostfr-jp") == "naruto-s1-e1-vostfrjp"
    assert parse_episode_id("naruto-s1-e1-vostfrjp").language == "vostfrjp"
