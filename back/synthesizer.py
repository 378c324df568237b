"""
Expands an aggregate episode count ("61 episodes") into a full episode list.

Many upstreams only report how many episodes a season has. Given that count
we can still build a complete, ordered list with stable ids, because ids are
derived rather than stored (see identifiers.py).
"""

from collections.abc import Sequence
from typing import Iterator, Mapping, Optional

from identifiers import build_id, normalize_language
from models import Episode, Season, Unit

DEFAULT_TITLES = {
    Unit.EPISODE: "Episode {n}",
    Unit.CHAPTER: "Chapter {n}",
}


class EpisodeSequence(Sequence):
    """
    Lazy, finite and restartable view over episodes 1..N of a season.

    Nothing is built until an item is read, so a page can be sliced out of a
    long-running show without materializing the rest of it.
    """

    def __init__(
        self,
        season: Season,
        title_id: str,
        language: str,
        titles: Optional[Mapping[int, str]] = None,
    ):
        self.season = season
        self.title_id = title_id
        self.language = normalize_language(language)
        self.titles = titles or {}
        self._count = season.episode_count or 0

    def __len__(self) -> int:
        return self._count

    def __getitem__(self, index):
        if isinstance(index, slice):
            return [self._make(i + 1) for i in range(*index.indices(self._count))]
        if index < 0:
            index += self._count
        if not 0 <= index < self._count:
            raise IndexError("episode index out of range")
        return self._make(index + 1)

    def __iter__(self) -> Iterator[Episode]:
        for number in range(1, self._count + 1):
            yield self._make(number)

    def _make(self, number: int) -> Episode:
        unit = self.season.unit
        return Episode(
            id=build_id(self.title_id, self.season.number, number, self.language, unit),
            number=number,
            title=self.titles.get(number) or DEFAULT_TITLES[unit].format(n=number),
            language=self.language,
            season=self.season.number,
        )


def synthesize(
    season: Season,
    title_id: str,
    language: str,
    titles: Optional[Mapping[int, str]] = None,
) -> list[Episode]:
    """Full episode list for `season`; empty (not an error) when the count is 0 or unknown."""
    return list(EpisodeSequence(season, title_id, language, titles))
