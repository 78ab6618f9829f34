"""Holiday fetching, caching and background retries.

National holidays come from the Nager.Date public API, municipal ones
from Calendarific (which needs an API key).  When the national fetch
fails the built-in calendar from :mod:`ferias.holidays` is used instead
and a background task keeps retrying at a fixed interval until it
succeeds, runs out of attempts, or is cancelled.  At most one retry task
runs per year: starting a new one cancels the previous one.
"""

from __future__ import annotations

import dataclasses
import datetime
import logging
import os
import threading
from collections.abc import Callable, Iterable
from typing import Any, NamedTuple

import httpx
from cachetools import TTLCache
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ferias.holidays import (
    AVAILABLE_CITIES,
    MUNICIPAL,
    NATIONAL,
    Holiday,
    filter_for_city,
    normalize_city,
    portuguese_holidays,
)

logger = logging.getLogger(__name__)

NAGER_URL = "https://date.nager.at/api/v3/publicholidays/{year}/PT"
CALENDARIFIC_URL = "https://calendarific.com/api/v2/holidays"

_LOCAL_TYPES = frozenset({"Local holiday", "Local", "Common local holiday"})


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class HolidayServiceConfig(NamedTuple):
    """Settings for the holiday service."""

    calendarific_api_key: str | None = None
    nager_url: str = NAGER_URL
    calendarific_url: str = CALENDARIFIC_URL
    national_timeout: float = 10.0
    municipal_timeout: float = 15.0
    retry_interval: float = 30.0
    max_retries: int = 5
    cache_ttl: float = 24 * 3600.0

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> HolidayServiceConfig:
        """Build a config from ``CALENDARIFIC_API_KEY`` and ``FERIAS_*`` variables."""
        env = os.environ if environ is None else environ
        defaults = cls()
        try:
            return cls(
                calendarific_api_key=(env.get("CALENDARIFIC_API_KEY") or "").strip() or None,
                retry_interval=float(env.get("FERIAS_RETRY_INTERVAL", defaults.retry_interval)),
                max_retries=int(env.get("FERIAS_MAX_RETRIES", defaults.max_retries)),
                cache_ttl=float(env.get("FERIAS_CACHE_TTL", defaults.cache_ttl)),
            )
        except ValueError as exc:
            msg = f"Invalid holiday service setting in environment: {exc}"
            raise ValueError(msg) from None


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class HolidayFetchError(Exception):
    """Base class for holiday fetching failures."""

    retryable = True


class HolidayNetworkError(HolidayFetchError):
    """The request never produced a response."""


class HolidayStatusError(HolidayFetchError):
    """The API answered with a non-200 status."""

    def __init__(self, source: str, status_code: int):
        super().__init__(f"{source} returned status {status_code}")
        self.status_code = status_code


class HolidayPayloadError(HolidayFetchError):
    """The API answered with something we could not parse."""


class MissingAPIKeyError(HolidayFetchError):
    """Municipal holidays were requested without a Calendarific key."""

    retryable = False


# ---------------------------------------------------------------------------
# Payload models
# ---------------------------------------------------------------------------


class NagerHoliday(BaseModel):
    date: datetime.date
    local_name: str = Field(alias="localName")
    name: str = ""
    is_global: bool = Field(default=False, alias="global")
    types: list[str] = Field(default_factory=list)


class CalendarificDate(BaseModel):
    iso: str


class CalendarificHoliday(BaseModel):
    name: str
    description: str = ""
    date: CalendarificDate
    type: list[str] = Field(default_factory=list)
    locations: str = ""
    states: Any = None


class CalendarificBody(BaseModel):
    holidays: list[CalendarificHoliday] = Field(default_factory=list)


class CalendarificResponse(BaseModel):
    # The API sends an empty list instead of an object when there is nothing.
    response: CalendarificBody | list[Any] = Field(default_factory=CalendarificBody)


_NAGER_LIST = TypeAdapter(list[NagerHoliday])


def _calendarific_location(holiday: CalendarificHoliday) -> str:
    location = holiday.locations.strip()
    if location in ("", "All") and isinstance(holiday.states, list) and holiday.states:
        first = holiday.states[0]
        if isinstance(first, dict) and isinstance(first.get("name"), str):
            location = first["name"].strip()
    return location


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


class HolidayClient:
    """Thin httpx wrapper around the two holiday APIs."""

    def __init__(self, config: HolidayServiceConfig, client: httpx.Client | None = None):
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.Client(
            follow_redirects=True,
            headers={"Accept": "application/json"},
        )

    def _get_json(
        self, source: str, url: str, timeout: float, params: dict[str, object] | None = None
    ) -> Any:
        try:
            response = self._client.get(url, params=params, timeout=timeout)
        except httpx.HTTPError as exc:
            msg = f"failed to fetch holidays from {source}: {exc}"
            raise HolidayNetworkError(msg) from exc

        if response.status_code != httpx.codes.OK:
            raise HolidayStatusError(source, response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            msg = f"{source} returned invalid JSON: {exc}"
            raise HolidayPayloadError(msg) from exc

    def fetch_national(self, year: int) -> list[Holiday]:
        """Public holidays that apply to the whole country."""
        data = self._get_json(
            "Nager.Date",
            self.config.nager_url.format(year=year),
            self.config.national_timeout,
        )
        try:
            records = _NAGER_LIST.validate_python(data)
        except ValidationError as exc:
            msg = f"Nager.Date payload for {year} is malformed: {exc.error_count()} error(s)"
            raise HolidayPayloadError(msg) from exc

        return [
            Holiday(r.date, r.local_name, NATIONAL)
            for r in records
            if r.is_global and "Public" in r.types
        ]

    def fetch_municipal(self, year: int) -> list[Holiday]:
        """Every municipal holiday for *year*; filter by city afterwards."""
        api_key = self.config.calendarific_api_key
        if not api_key:
            msg = "Calendarific API key not configured"
            raise MissingAPIKeyError(msg)

        data = self._get_json(
            "Calendarific",
            self.config.calendarific_url,
            self.config.municipal_timeout,
            params={"api_key": api_key, "country": "PT", "year": year, "type": "local"},
        )
        try:
            payload = CalendarificResponse.model_validate(data)
        except ValidationError as exc:
            msg = f"Calendarific payload for {year} is malformed: {exc.error_count()} error(s)"
            raise HolidayPayloadError(msg) from exc

        if not isinstance(payload.response, CalendarificBody):
            return []

        holidays: list[Holiday] = []
        for record in payload.response.holidays:
            if not _LOCAL_TYPES.intersection(record.type):
                continue
            location = _calendarific_location(record)
            if location in ("", "All"):
                continue
            try:
                day = datetime.date.fromisoformat(record.date.iso[:10])
            except ValueError as exc:
                msg = f"Calendarific date {record.date.iso!r} is malformed"
                raise HolidayPayloadError(msg) from exc
            holidays.append(Holiday(day, f"{record.name} ({location})", MUNICIPAL, location))
        return holidays

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class HolidayCache:
    """Holiday lists keyed by ``(year, locality)``.

    ``locality`` is the normalised city name, or ``""`` for national-only
    lists.
    """

    def __init__(self, maxsize: int = 128, ttl: float = 24 * 3600.0):
        self._data: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._lock = threading.Lock()

    @staticmethod
    def key(year: int, city: str | None = None) -> tuple[int, str]:
        return (year, normalize_city(city) if city else "")

    def get(self, year: int, city: str | None = None) -> list[Holiday] | None:
        with self._lock:
            cached = self._data.get(self.key(year, city))
        return list(cached) if cached is not None else None

    def put(self, year: int, city: str | None, holidays: Iterable[Holiday]) -> None:
        with self._lock:
            self._data[self.key(year, city)] = tuple(holidays)

    def invalidate(self, year: int) -> None:
        """Forget every locality cached for *year*."""
        with self._lock:
            for key in [k for k in list(self._data.keys()) if k[0] == year]:
                self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


# ---------------------------------------------------------------------------
# Status and retry tasks
# ---------------------------------------------------------------------------


@dataclasses.dataclass
class HolidayStatus:
    """Loading state of one year's holiday data."""

    year: int
    max_retries: int
    national_loaded: bool = False
    municipal_loaded: bool = False
    national_error: str = ""
    municipal_error: str = ""
    last_updated: datetime.datetime | None = None
    retry_count: int = 0
    next_retry: datetime.datetime | None = None
    is_retrying: bool = False

    @property
    def has_errors(self) -> bool:
        return bool(self.national_error or self.municipal_error)

    def to_dict(self) -> dict[str, object]:
        result: dict[str, object] = {
            "year": self.year,
            "national_loaded": self.national_loaded,
            "municipal_loaded": self.municipal_loaded,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "is_retrying": self.is_retrying,
            "has_errors": self.has_errors,
        }
        if self.national_error:
            result["national_error"] = self.national_error
        if self.municipal_error:
            result["municipal_error"] = self.municipal_error
        if self.is_retrying and self.next_retry is not None:
            result["next_retry"] = self.next_retry.isoformat()
        return result


class RetryTask:
    """A background retry loop for one year, cancellable through its token."""

    def __init__(self, year: int, target: Callable[[RetryTask], None]):
        self.year = year
        self.cancelled = threading.Event()
        self._thread = threading.Thread(
            target=target, args=(self,), name=f"holiday-retry-{year}", daemon=True
        )

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self.cancelled.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread.ident is not None:
            self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread.is_alive()


class RetryRegistry:
    """Tracks the single active retry task per year."""

    def __init__(self) -> None:
        self._tasks: dict[int, RetryTask] = {}
        self._lock = threading.Lock()

    def start(self, year: int, target: Callable[[RetryTask], None]) -> RetryTask:
        task = RetryTask(year, target)
        with self._lock:
            previous = self._tasks.pop(year, None)
            if previous is not None:
                previous.cancel()
            self._tasks[year] = task
        task.start()
        return task

    def get(self, year: int) -> RetryTask | None:
        with self._lock:
            return self._tasks.get(year)

    def cancel(self, year: int) -> bool:
        with self._lock:
            task = self._tasks.pop(year, None)
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_all(self) -> list[RetryTask]:
        with self._lock:
            tasks = list(self._tasks.values())
            self._tasks.clear()
        for task in tasks:
            task.cancel()
        return tasks

    def discard(self, task: RetryTask) -> bool:
        """Unregister *task* if it is still the current one for its year."""
        with self._lock:
            if self._tasks.get(task.year) is task:
                del self._tasks[task.year]
                return True
        return False


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class HolidayService:
    """Resolves the holiday list for a year, with caching and fallback."""

    def __init__(
        self,
        config: HolidayServiceConfig | None = None,
        *,
        client: HolidayClient | None = None,
        cache: HolidayCache | None = None,
    ):
        self.config = config or HolidayServiceConfig()
        self.client = client or HolidayClient(self.config)
        self.cache = cache or HolidayCache(ttl=self.config.cache_ttl)
        self._status: dict[int, HolidayStatus] = {}
        self._status_lock = threading.Lock()
        self._retries = RetryRegistry()

    def __enter__(self) -> HolidayService:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def _update_status(self, year: int, **changes: Any) -> None:
        with self._status_lock:
            status = self._status.get(year)
            if status is None:
                status = HolidayStatus(year=year, max_retries=self.config.max_retries)
                self._status[year] = status
            for name, value in changes.items():
                setattr(status, name, value)

    def get_status(self, year: int) -> HolidayStatus | None:
        """A snapshot of the loading status for *year*."""
        with self._status_lock:
            status = self._status.get(year)
            return dataclasses.replace(status) if status is not None else None

    def all_statuses(self) -> dict[int, HolidayStatus]:
        with self._status_lock:
            return {year: dataclasses.replace(s) for year, s in self._status.items()}

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _combine(
        self,
        year: int,
        national: list[Holiday] | None,
        municipal: list[Holiday] | None,
        city: str | None,
    ) -> list[Holiday]:
        holidays = list(national) if national is not None else portuguese_holidays(year)
        if city and municipal:
            holidays.extend(filter_for_city(municipal, city))
        return sorted(holidays, key=lambda h: h.date)

    def load_holidays(self, year: int, city: str | None = None) -> list[Holiday]:
        """Holidays for *year*, including *city*'s municipal ones.

        Never raises for fetch failures: the built-in national calendar is
        returned instead and a background retry is scheduled.
        """
        cached = self.cache.get(year, city)
        if cached is not None:
            return cached

        self._update_status(year)
        national: list[Holiday] | None = None
        municipal: list[Holiday] | None = None
        retry_national = retry_municipal = False

        try:
            national = self.client.fetch_national(year)
        except HolidayFetchError as exc:
            logger.warning(
                "Failed to fetch national holidays for %d: %s. Using built-in calendar.", year, exc
            )
            self._update_status(year, national_loaded=False, national_error=str(exc))
            retry_national = exc.retryable
        else:
            self._update_status(year, national_loaded=True, national_error="")

        if city:
            try:
                municipal = self.client.fetch_municipal(year)
            except HolidayFetchError as exc:
                logger.warning("Failed to fetch municipal holidays for %d: %s", year, exc)
                self._update_status(year, municipal_loaded=False, municipal_error=str(exc))
                retry_municipal = exc.retryable
            else:
                self._update_status(year, municipal_loaded=True, municipal_error="")

        holidays = self._combine(year, national, municipal, city)
        self.cache.put(year, city, holidays)
        self._update_status(year, last_updated=datetime.datetime.now())

        if retry_national or retry_municipal:
            self._start_retry(year, city, national, municipal, retry_national, retry_municipal)

        return list(holidays)

    def refresh(self, year: int, city: str | None = None) -> list[Holiday]:
        """Drop everything known about *year* and load it again."""
        self.cancel_retry(year)
        with self._status_lock:
            self._status.pop(year, None)
        self.cache.invalidate(year)
        return self.load_holidays(year, city)

    def available_cities(self) -> list[str]:
        return list(AVAILABLE_CITIES)

    # ------------------------------------------------------------------
    # Background retries
    # ------------------------------------------------------------------

    def retry_task(self, year: int) -> RetryTask | None:
        return self._retries.get(year)

    def cancel_retry(self, year: int) -> bool:
        cancelled = self._retries.cancel(year)
        if cancelled:
            self._update_status(year, is_retrying=False)
        return cancelled

    def _start_retry(
        self,
        year: int,
        city: str | None,
        national: list[Holiday] | None,
        municipal: list[Holiday] | None,
        retry_national: bool,
        retry_municipal: bool,
    ) -> RetryTask:
        interval = self.config.retry_interval
        self._update_status(
            year,
            retry_count=0,
            is_retrying=True,
            next_retry=datetime.datetime.now() + datetime.timedelta(seconds=interval),
        )

        def run(task: RetryTask) -> None:
            nonlocal national, municipal, retry_national, retry_municipal
            try:
                while not task.cancelled.wait(interval):
                    with self._status_lock:
                        status = self._status.get(year)
                        if status is None:
                            break
                        status.retry_count += 1
                        attempt = status.retry_count

                    if attempt > self.config.max_retries:
                        logger.warning("Max retries reached for %d holidays, giving up", year)
                        break

                    logger.info(
                        "Background retry %d/%d for %d holidays",
                        attempt,
                        self.config.max_retries,
                        year,
                    )
                    next_retry = datetime.datetime.now() + datetime.timedelta(seconds=interval)
                    changed = False

                    if retry_national and not task.cancelled.is_set():
                        try:
                            national = self.client.fetch_national(year)
                        except HolidayFetchError as exc:
                            logger.warning("Retry failed for national holidays: %s", exc)
                            self._update_status(
                                year, national_error=str(exc), next_retry=next_retry
                            )
                        else:
                            retry_national = False
                            changed = True
                            self._update_status(year, national_loaded=True, national_error="")
                            logger.info("National holidays for %d loaded on retry", year)

                    if retry_municipal and not task.cancelled.is_set():
                        try:
                            municipal = self.client.fetch_municipal(year)
                        except HolidayFetchError as exc:
                            logger.warning("Retry failed for municipal holidays: %s", exc)
                            self._update_status(
                                year, municipal_error=str(exc), next_retry=next_retry
                            )
                        else:
                            retry_municipal = False
                            changed = True
                            self._update_status(year, municipal_loaded=True, municipal_error="")
                            logger.info("Municipal holidays for %d loaded on retry", year)

                    if task.cancelled.is_set():
                        break
                    if changed:
                        self.cache.put(year, city, self._combine(year, national, municipal, city))
                        self._update_status(year, last_updated=datetime.datetime.now())
                    if not retry_national and not retry_municipal:
                        break
            finally:
                if self._retries.discard(task):
                    self._update_status(year, is_retrying=False)

        return self._retries.start(year, run)

    def close(self) -> None:
        """Cancel every retry task and release the HTTP client.

        Running tasks are joined first so none of them sends a request on
        the closed client.
        """
        tasks = self._retries.cancel_all()
        with self._status_lock:
            for status in self._status.values():
                status.is_retrying = False
        for task in tasks:
            task.join(self.config.national_timeout + self.config.municipal_timeout)
        self.client.close()
