"""Portuguese holiday records and the built-in national calendar.

The built-in calendar is what the planner falls back to when the public
holiday API cannot be reached: the fixed-date national holidays plus the
three that move with Easter.
"""

from __future__ import annotations

import datetime
from collections.abc import Iterable
from typing import NamedTuple

NATIONAL = "national"
MUNICIPAL = "municipal"
OPTIONAL = "optional"

HOLIDAY_TYPES: tuple[str, ...] = (NATIONAL, MUNICIPAL, OPTIONAL)


class Holiday(NamedTuple):
    """A single holiday.  ``location`` is only set for municipal holidays."""

    date: datetime.date
    name: str
    type: str = NATIONAL
    location: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "date": self.date.isoformat(),
            "name": self.name,
            "type": self.type,
            "location": self.location or "",
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def calculate_easter(year: int) -> datetime.date:
    """Easter Sunday for *year* (anonymous Gregorian algorithm)."""
    a = year % 19
    b = year // 100
    c = year % 100
    d = b // 4
    e = b % 4
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i = c // 4
    k = c % 4
    l = (32 + 2 * e + 2 * i - h - k) % 7  # noqa: E741
    m = (a + 11 * h + 22 * l) // 451
    month = (h + l - 7 * m + 114) // 31
    day = ((h + l - 7 * m + 114) % 31) + 1
    return datetime.date(year, month, day)


def normalize_city(city: str) -> str:
    return city.strip().lower()


def contains_city(location: str | None, city: str) -> bool:
    """True if a holiday *location* covers *city*.

    Locations may list several municipalities, e.g. ``"Porto, Braga"``;
    each part must match exactly (case-insensitive).
    """
    if not location:
        return False
    wanted = normalize_city(city)
    if normalize_city(location) == wanted:
        return True
    return any(part.strip() == wanted for part in location.lower().split(","))


def filter_for_city(holidays: Iterable[Holiday], city: str | None) -> list[Holiday]:
    """Drop municipal holidays that do not belong to *city*.

    With no city every municipal holiday is dropped.
    """
    kept: list[Holiday] = []
    for h in holidays:
        if h.type != MUNICIPAL:
            kept.append(h)
        elif city and contains_city(h.location, city):
            kept.append(h)
    return kept


def holiday_dates(holidays: Iterable[Holiday | datetime.date]) -> set[datetime.date]:
    """Collapse holiday records (or bare dates) into a set of dates."""
    return {h if isinstance(h, datetime.date) else h.date for h in holidays}


# ---------------------------------------------------------------------------
# Built-in calendar
# ---------------------------------------------------------------------------

_FIXED_NATIONAL: tuple[tuple[int, int, str], ...] = (
    (1, 1, "Ano Novo"),
    (4, 25, "Dia da Liberdade"),
    (5, 1, "Dia do Trabalhador"),
    (6, 10, "Dia de Portugal"),
    (8, 15, "Assunção de Nossa Senhora"),
    (10, 5, "Implantação da República"),
    (11, 1, "Dia de Todos os Santos"),
    (12, 1, "Restauração da Independência"),
    (12, 8, "Imaculada Conceição"),
    (12, 25, "Natal"),
)

AVAILABLE_CITIES: list[str] = sorted(
    [
        "Lisboa",
        "Porto",
        "Braga",
        "Coimbra",
        "Setúbal",
        "Funchal",
        "Aveiro",
        "Viseu",
        "Leiria",
        "Faro",
        "Évora",
        "Guimarães",
        "Vila Nova de Gaia",
        "Matosinhos",
        "Almada",
        "Oeiras",
        "Cascais",
        "Sintra",
        "Loures",
        "Amadora",
        "Gondomar",
        "Maia",
        "Santarém",
        "Beja",
        "Castelo Branco",
        "Portalegre",
        "Vila Real",
        "Bragança",
        "Viana do Castelo",
        "Guarda",
        "Ponta Delgada",
        "Angra do Heroísmo",
        "Horta",
    ]
)


def portuguese_holidays(year: int) -> list[Holiday]:
    """Portuguese national holidays for *year*, sorted by date."""
    easter = calculate_easter(year)
    holidays = [Holiday(datetime.date(year, m, d), name) for m, d, name in _FIXED_NATIONAL]
    holidays.extend(
        [
            Holiday(easter - datetime.timedelta(days=2), "Sexta-feira Santa"),
            Holiday(easter, "Domingo de Páscoa"),
            Holiday(easter + datetime.timedelta(days=60), "Corpo de Deus"),
        ]
    )
    return sorted(holidays)
