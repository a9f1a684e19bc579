"""Free-text location resolution against a bounded city/country table."""
from __future__ import annotations

import re
import unicodedata

from jobping.models import Location

# canonical city -> (country, aliases)
CITIES: dict[str, tuple[str, tuple[str, ...]]] = {
    "London": ("United Kingdom", ("london", "city of london", "greater london")),
    "Manchester": ("United Kingdom", ("manchester",)),
    "Edinburgh": ("United Kingdom", ("edinburgh",)),
    "Dublin": ("Ireland", ("dublin", "baile atha cliath")),
    "Cork": ("Ireland", ("cork",)),
    "Paris": ("France", ("paris", "ile-de-france", "ile de france")),
    "Lyon": ("France", ("lyon",)),
    "Berlin": ("Germany", ("berlin",)),
    "Munich": ("Germany", ("munich", "munchen", "muenchen")),
    "Hamburg": ("Germany", ("hamburg",)),
    "Frankfurt": ("Germany", ("frankfurt", "frankfurt am main")),
    "Cologne": ("Germany", ("cologne", "koln", "koeln")),
    "Amsterdam": ("Netherlands", ("amsterdam",)),
    "Rotterdam": ("Netherlands", ("rotterdam",)),
    "Brussels": ("Belgium", ("brussels", "bruxelles", "brussel")),
    "Madrid": ("Spain", ("madrid",)),
    "Barcelona": ("Spain", ("barcelona",)),
    "Lisbon": ("Portugal", ("lisbon", "lisboa")),
    "Milan": ("Italy", ("milan", "milano")),
    "Rome": ("Italy", ("rome", "roma")),
    "Zurich": ("Switzerland", ("zurich", "zuerich")),
    "Geneva": ("Switzerland", ("geneva", "geneve", "genf")),
    "Vienna": ("Austria", ("vienna", "wien")),
    "Prague": ("Czech Republic", ("prague", "praha")),
    "Warsaw": ("Poland", ("warsaw", "warszawa")),
    "Copenhagen": ("Denmark", ("copenhagen", "kobenhavn")),
    "Stockholm": ("Sweden", ("stockholm",)),
    "Oslo": ("Norway", ("oslo",)),
    "Helsinki": ("Finland", ("helsinki",)),
    "Athens": ("Greece", ("athens", "athina")),
    "Luxembourg": ("Luxembourg", ("luxembourg city",)),
    "New York": ("United States", ("new york", "new york city", "nyc", "ny")),
    "San Francisco": ("United States", ("san francisco", "sf", "bay area")),
    "Toronto": ("Canada", ("toronto",)),
    "Singapore": ("Singapore", ("singapore",)),
}

COUNTRIES: dict[str, tuple[str, ...]] = {
    "United Kingdom": ("united kingdom", "uk", "gb", "great britain", "england", "scotland", "wales"),
    "Ireland": ("ireland", "ie", "eire"),
    "France": ("france", "fr"),
    "Germany": ("germany", "de", "deutschland"),
    "Netherlands": ("netherlands", "nl", "the netherlands", "holland"),
    "Belgium": ("belgium", "be"),
    "Spain": ("spain", "es", "espana"),
    "Portugal": ("portugal", "pt"),
    "Italy": ("italy", "it", "italia"),
    "Switzerland": ("switzerland", "ch", "schweiz", "suisse"),
    "Austria": ("austria", "at", "osterreich"),
    "Czech Republic": ("czech republic", "czechia", "cz"),
    "Poland": ("poland", "pl", "polska"),
    "Denmark": ("denmark", "dk"),
    "Sweden": ("sweden", "se"),
    "Norway": ("norway", "no"),
    "Finland": ("finland", "fi"),
    "Greece": ("greece", "gr"),
    "Luxembourg": ("luxembourg", "lu"),
    "United States": ("united states", "usa", "us", "united states of america"),
    "Canada": ("canada", "ca"),
    "Singapore": ("singapore", "sg"),
}

REMOTE_MARKERS: tuple[str, ...] = (
    "remote", "anywhere", "work from home", "wfh", "distributed", "fully remote",
)

_SPLIT_RE = re.compile(r"\s*(?:,|/|;|\||\s-\s|\(|\))\s*")
_REMOTE_RE = re.compile(r"\b(?:" + "|".join(re.escape(m) for m in REMOTE_MARKERS) + r")\b")


def fold(text: str) -> str:
    """Lowercase, strip accents and collapse whitespace."""
    decomposed = unicodedata.normalize("NFKD", text or "")
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return " ".join(stripped.casefold().split())


def _build_index() -> tuple[dict[str, tuple[str, str]], dict[str, str]]:
    city_index: dict[str, tuple[str, str]] = {}
    for city, (country, aliases) in CITIES.items():
        city_index[fold(city)] = (city, country)
        for alias in aliases:
            city_index[fold(alias)] = (city, country)
    country_index: dict[str, str] = {}
    for country, aliases in COUNTRIES.items():
        country_index[fold(country)] = country
        for alias in aliases:
            country_index[fold(alias)] = country
    return city_index, country_index


_CITY_INDEX, _COUNTRY_INDEX = _build_index()


def has_remote_marker(text: str) -> bool:
    return bool(_REMOTE_RE.search(fold(text)))


def canonical_city(name: str) -> str | None:
    hit = _CITY_INDEX.get(fold(name))
    return hit[0] if hit else None


def canonical_country(name: str) -> str | None:
    folded = fold(name)
    if folded in _COUNTRY_INDEX:
        return _COUNTRY_INDEX[folded]
    # "Luxembourg" is both a city and a country; prefer the country here
    hit = _CITY_INDEX.get(folded)
    return hit[1] if hit else None


def resolve_location(text: str | None) -> Location:
    """Map free text to a canonical city/country pair where possible.

    Unresolvable text is kept verbatim in ``raw``; callers decide whether a
    missing resolution matters.
    """
    raw = " ".join((text or "").split())
    remote = has_remote_marker(raw)
    city: str | None = None
    country: str | None = None

    for token in _SPLIT_RE.split(raw):
        key = fold(token)
        if not key:
            continue
        if city is None and key in _CITY_INDEX:
            city, city_country = _CITY_INDEX[key]
            country = country or city_country
            continue
        if key in _COUNTRY_INDEX:
            found = _COUNTRY_INDEX[key]
            if city is None or country is None:
                country = found
            # a short ISO code after a city ("Paris, TX") must not override its country
            elif len(key) > 2 and found != country:
                country = found
                city = None

    if city is None and country is None:
        # "Berlin Office", "Remote - London HQ"
        folded = fold(raw)
        for alias, (c_name, c_country) in _CITY_INDEX.items():
            if len(alias) > 3 and re.search(rf"\b{re.escape(alias)}\b", folded):
                city, country = c_name, c_country
                break

    return Location(raw=raw, city=city, country=country, remote=remote)
