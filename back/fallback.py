"""
Built-in catalog served when the catalog provider is unreachable and nothing
is cached yet.

These entries only ever reach clients inside a response flagged
`degraded: true`. Seasons carry episode counts, so episode lists can still be
synthesized for them; playback sources cannot.
"""

from config import settings
from models import Season, Status, Title

_CDN = settings.anime_sama_image_cdn


def _season(title_id: str, count: int, languages=("vostfr", "vf")) -> Season:
    return Season(
        number=1,
        name="Saison 1",
        languages=list(languages),
        episode_count=count,
        locator=f"https://anime-sama.fr/catalogue/{title_id}/saison1/",
    )


FALLBACK_TITLES = [
    Title(
        id="one-piece",
        title="One Piece",
        cover=f"{_CDN}/one-piece.jpg",
        status=Status.ONGOING,
        year=1999,
        genres=["Action", "Aventure", "Comédie"],
        synopsis="Les aventures de Monkey D. Luffy",
        seasons=[_season("one-piece", 61)],
    ),
    Title(
        id="demon-slayer",
        title="Demon Slayer: Kimetsu no Yaiba",
        cover=f"{_CDN}/demon-slayer-kimetsu-no-yaiba.jpg",
        status=Status.FINISHED,
        year=2019,
        genres=["Action", "Surnaturel", "Drame"],
        synopsis="L'histoire de Tanjiro Kamado",
        seasons=[_season("demon-slayer", 26)],
    ),
    Title(
        id="chainsaw-man",
        title="Chainsaw Man",
        cover=f"{_CDN}/chainsaw-man.jpg",
        status=Status.FINISHED,
        year=2022,
        genres=["Action", "Horreur", "Comédie"],
        synopsis="L'histoire de Denji et Pochita",
        seasons=[_season("chainsaw-man", 12)],
    ),
    Title(
        id="drcl-midnight-children",
        title="#DRCL midnight children",
        cover=f"{_CDN}/drcl-midnight-children0.jpg",
        status=Status.ONGOING,
        year=2024,
        genres=["Drame", "Fantastique", "Surnaturel"],
        synopsis=settings.placeholder_synopsis,
        seasons=[_season("drcl-midnight-children", 12, ("vostfr",))],
    ),
    Title(
        id="tis-time-for-torture-princess",
        title="'Tis Time for \"Torture,\" Princess",
        cover=f"{_CDN}/tis-time-for-torture-princess.jpg",
        status=Status.FINISHED,
        year=2024,
        genres=["Comédie", "Fantasy", "Démons"],
        synopsis="Hime-sama, \"Goumon\" no Jikan desu",
        seasons=[_season("tis-time-for-torture-princess", 12, ("vostfr",))],
    ),
]


def fallback_titles(provider: str) -> list[Title]:
    """Fallback catalog tagged with the provider it stands in for. Anime only."""
    if provider != "animesama":
        return []
    return [t.model_copy(update={"provider": provider}) for t in FALLBACK_TITLES]


def find(provider: str, title_id: str) -> Title | None:
    for title in fallback_titles(provider):
        if title.id == title_id:
            return title
    return None


def search(provider: str, query: str) -> list[Title]:
    query = query.strip().lower()
    return [
        t for t in fallback_titles(provider)
        if query in t.title.lower() or query in t.id
    ]

