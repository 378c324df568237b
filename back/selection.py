"""
Language and server selection for playback.

Language variants (vf, vostfr...) and mirror servers are both selection axes.
Selection never fails: a missing language falls back to the first available
one (and says so), an out-of-range server index is clamped.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from identifiers import normalize_language
from models import Episode, Season, Server


@dataclass(frozen=True)
class ActiveLanguage:
    language: str
    requested: str
    fell_back: bool = False


@dataclass(frozen=True)
class ActiveServer:
    index: Optional[int]
    server: Optional[Server]
    clamped: bool = False


def available_languages(season: Season) -> list[str]:
    """Provider order, deduplicated and lower-cased."""
    codes = (normalize_language(lang) for lang in season.languages)
    return list(dict.fromkeys(code for code in codes if code))


def select_language(season: Season, requested: str) -> ActiveLanguage:
    wanted = normalize_language(requested)
    languages = available_languages(season)
    if not wanted:
        # no preference: provider's first variant, not a fallback
        return ActiveLanguage(language=languages[0] if languages else "", requested="")
    if not languages or wanted in languages:
        # nothing advertised: trust the caller and let the provider decide
        return ActiveLanguage(language=wanted, requested=wanted)
    return ActiveLanguage(language=languages[0], requested=wanted, fell_back=True)


def select_server(episode: Episode | Sequence[Server], requested: Optional[int] = None) -> ActiveServer:
    servers = episode.servers if isinstance(episode, Episode) else list(episode)
    if not servers:
        return ActiveServer(index=None, server=None, clamped=requested is not None)

    if requested is None:
        return ActiveServer(index=0, server=servers[0])

    index = min(max(requested, 0), len(servers) - 1)
    return ActiveServer(index=index, server=servers[index], clamped=index != requested)


# --- Playback session ---

class PlaybackState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    READY = "ready"
    SWITCHING = "switching"


class InvalidTransition(Exception):
    pass


@dataclass
class PlaybackSession:
    """
    Idle -> Resolving -> Ready(i) -> Switching(j) -> Ready(j)

    Switching only changes which resolved source is presented; the source
    list itself is kept until another episode is loaded.
    """

    state: PlaybackState = PlaybackState.IDLE
    episode_id: Optional[str] = None
    servers: list[Server] = field(default_factory=list)
    index: Optional[int] = None
    pending_index: Optional[int] = None

    def load(self, episode_id: str) -> None:
        if self.state == PlaybackState.SWITCHING:
            raise InvalidTransition("cannot load an episode while switching servers")
        self.state = PlaybackState.RESOLVING
        self.episode_id = episode_id
        self.servers = []
        self.index = None
        self.pending_index = None

    def resolved(self, servers: Sequence[Server], requested: Optional[int] = None) -> ActiveServer:
        if self.state != PlaybackState.RESOLVING:
            raise InvalidTransition(f"resolved() while {self.state.value}")
        self.servers = list(servers)
        active = select_server(self.servers, requested)
        self.index = active.index
        self.state = PlaybackState.READY
        return active

    def switch(self, requested: int) -> ActiveServer:
        if self.state != PlaybackState.READY:
            raise InvalidTransition(f"switch() while {self.state.value}")
        self.state = PlaybackState.SWITCHING
        active = select_server(self.servers, requested)
        self.pending_index = active.index
        return active

    def switched(self) -> ActiveServer:
        if self.state != PlaybackState.SWITCHING:
            raise InvalidTransition(f"switched() while {self.state.value}")
        self.index = self.pending_index
        self.pending_index = None
        self.state = PlaybackState.READY
        return self.current

    def next_server(self) -> ActiveServer:
        """Move to the following mirror (clamped at the last one), e.g. after a playback error."""
        current = self.index if self.index is not None else -1
        self.switch(current + 1)
        return self.switched()

    @property
    def current(self) -> ActiveServer:
        if self.index is None:
            return ActiveServer(index=None, server=None)
        return ActiveServer(index=self.index, server=self.servers[self.index])
