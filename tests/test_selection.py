"""Tests for language/server selection and the playback session."""

import pytest

from conftest import make_servers
from models import Episode, Season
from selection import (
    InvalidTransition,
    PlaybackSession,
    PlaybackState,
    available_languages,
    select_language,
    select_server,
)


def _season(*languages) -> Season:
    return Season(number=1, languages=list(languages), episode_count=12)


# --- Servers ---

def test_out_of_range_server_is_clamped_to_last() -> None:
    servers = make_servers(3)
    active = select_server(servers, 7)
    assert active.index == 2
    assert active.server == servers[2]
    assert active.clamped


def test_negative_server_is_clamped_to_first() -> None:
    active = select_server(make_servers(3), -4)
    assert active.index == 0
    assert active.clamped


def test_default_server_is_first() -> None:
    active = select_server(make_servers(2))
    assert active.index == 0
    assert not active.clamped


def test_server_selection_is_idempotent() -> None:
    servers = make_servers(3)
    assert select_server(servers, 7) == select_server(servers, 7)


def test_no_servers_selects_nothing() -> None:
    active = select_server([], 1)
    assert active.index is None
    assert active.server is None


def test_select_server_accepts_an_episode() -> None:
    episode = Episode(id="one-piece-s1-e1-vostfr", number=1, language="vostfr", servers=make_servers(2))
    assert select_server(episode, 1).server.name == "Serveur 2"


# --- Languages ---

def test_missing_language_falls_back_to_first_available() -> None:
    active = select_language(_season("vostfr"), "vf")
    assert active.language == "vostfr"
    assert active.requested == "vf"
    assert active.fell_back


def test_available_language_is_kept_case_insensitively() -> None:
    active = select_language(_season("vostfr", "vf"), "VF")
    assert active.language == "vf"
    assert not active.fell_back


def test_no_preference_uses_provider_order_without_flag() -> None:
    active = select_language(_season("vostfr", "vf"), "")
    assert active.language == "vostfr"
    assert not active.fell_back


def test_season_without_languages_trusts_the_request() -> None:
    active = select_language(_season(), "vf")
    assert active.language == "vf"
    assert not active.fell_back


def test_available_languages_are_deduplicated() -> None:
    assert available_languages(_season("VOSTFR", "vostfr", "vf")) == ["vostfr", "vf"]


# --- Playback session ---

def test_session_walks_through_every_state() -> None:
    session = PlaybackSession()
    assert session.state == PlaybackState.IDLE

    session.load("one-piece-s1-e1-vostfr")
    assert session.state == PlaybackState.RESOLVING

    active = session.resolved(make_servers(3), requested=1)
    assert session.state == PlaybackState.READY
    assert active.index == 1

    session.switch(9)
    assert session.state == PlaybackState.SWITCHING
    assert session.current.index == 1  # still presenting the old source

    active = session.switched()
    assert session.state == PlaybackState.READY
    assert active.index == 2


def test_switch_keeps_the_resolved_list() -> None:
    session = PlaybackSession()
    session.load("ep")
    servers = make_servers(2)
    session.resolved(servers)
    session.switch(1)
    session.switched()
    assert session.servers == servers


def test_next_server_stops_at_the_last_mirror() -> None:
    session = PlaybackSession()
    session.load("ep")
    session.resolved(make_servers(2))
    assert session.next_server().index == 1
    assert session.next_server().index == 1


def test_loading_another_episode_resets_the_sources() -> None:
    session = PlaybackSession()
    session.load("ep-1")
    session.resolved(make_servers(2))
    session.load("ep-2")
    assert session.state == PlaybackState.RESOLVING
    assert session.servers == []
    assert session.current.index is None


@pytest.mark.parametrize("action", ["switch", "switched", "resolved"])
def test_transitions_out_of_idle_are_rejected(action: str) -> None:
    session = PlaybackSession()
    with pytest.raises(InvalidTransition):
        if action == "switch":
            session.switch(0)
        elif action == "switched":
            session.switched()
        else:
            session.resolved([])


def test_load_while_switching_is_rejected() -> None:
    session = PlaybackSession()
    session.load("ep")
    session.resolved(make_servers(2))
    session.switch(1)
    with pytest.raises(InvalidTransition):
        session.load("other")
