"""
Calendar Store Module
Fetch the venue's event listings, cache them, and match events to dates.
"""

import json
import time
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional
from urllib.parse import quote, urljoin

import requests
from bs4 import BeautifulSoup
from loguru import logger

from venue_assistant.date_parsing import normalize_query_date, parse_calendar_date, to_date
from venue_assistant.storage import KeyValueStore


CALENDAR_CACHE_KEY = "calendarCache"
DEFAULT_CALENDAR_URL = "https://calendar338.com/"
DEFAULT_PROXY_URL = "https://api.allorigins.win/raw?url="

EVENT_SELECTOR = ".event, .event-item"
TITLE_SELECTORS = [".event-title", "h3", "h2"]
DATE_SELECTORS = [".event-date", ".date"]
TIME_SELECTORS = [".event-time", ".time"]
DESCRIPTION_SELECTORS = [".event-description", ".description", "p"]

FALLBACK_WEEKS = 5
# Friday, then Saturday
FALLBACK_TEMPLATES = [
    {
        "title": "FRIDAY NIGHT SESSIONS",
        "time": "22:00 - 06:00",
        "description": "Late night electronic music across both rooms",
    },
    {
        "title": "ALL DAY I DREAM",
        "time": "14:00 - 23:00",
        "description": "Day-to-night melodic house on the terrace and main room",
    },
]


def _select_text(element, selectors: List[str]) -> str:
    """Text of the first selector that matches inside element, or ''."""
    for selector in selectors:
        found = element.select_one(selector)
        if found is not None:
            text = found.get_text(" ", strip=True)
            if text:
                return text
    return ""


def generate_fallback_events(today: date) -> List[Dict]:
    """
    Placeholder listings for when no real calendar data can be obtained.

    Produces the next five Friday/Saturday pairs, starting with the first
    Friday on or after ``today``, newest first.
    """
    first_friday = today + timedelta(days=(4 - today.weekday()) % 7)

    events = []
    for week in range(FALLBACK_WEEKS):
        friday = first_friday + timedelta(weeks=week)
        for offset, template in enumerate(FALLBACK_TEMPLATES):
            event_date = friday + timedelta(days=offset)
            events.append({
                "title": template["title"],
                "date": event_date.isoformat(),
                "raw_date": event_date.strftime("%a %d %b %Y"),
                "time": template["time"],
                "description": template["description"],
                "tickets_available": True,
                "url": "",
                "is_fallback": True,
            })

    return sorted(events, key=lambda e: e["date"], reverse=True)


def parse_events(html: str, source_url: str = DEFAULT_CALENDAR_URL) -> List[Dict]:
    """
    Parse event listings out of the calendar page.

    Events whose date can't be read are kept with an empty date.

    Args:
        html: Calendar page markup
        source_url: Page URL, used to resolve relative event links

    Returns:
        Events sorted newest first (empty if none were found)
    """
    soup = BeautifulSoup(html or "", "lxml")

    events = []
    for element in soup.select(EVENT_SELECTOR):
        raw_date = _select_text(element, DATE_SELECTORS)
        element_text = element.get_text(" ", strip=True).lower()
        link = element.select_one("a[href]")

        events.append({
            "title": _select_text(element, TITLE_SELECTORS) or "Untitled Event",
            "date": parse_calendar_date(raw_date),
            "raw_date": raw_date,
            "time": _select_text(element, TIME_SELECTORS),
            "description": _select_text(element, DESCRIPTION_SELECTORS),
            "tickets_available": "tickets" in element_text or "book" in element_text,
            "url": urljoin(source_url, link["href"]) if link is not None else source_url,
            "is_fallback": False,
        })

    undated = sum(1 for e in events if not e["date"])
    if undated:
        logger.warning(f"{undated} of {len(events)} events have unreadable dates")

    return sorted(events, key=lambda e: e["date"], reverse=True)


class CalendarStore:
    """Cached access to the venue's events calendar."""

    def __init__(
        self,
        cache: Optional[KeyValueStore] = None,
        calendar_url: str = DEFAULT_CALENDAR_URL,
        proxy_url: str = DEFAULT_PROXY_URL,
        use_proxy: bool = True,
        ttl_seconds: int = 3600,
        window_days: int = 3,
        timeout: int = 30,
        max_retries: int = 3,
        retry_delay: float = 2,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize calendar store.

        Args:
            cache: Durable key-value store (None keeps the cache in memory only)
            calendar_url: Page listing the venue's events
            proxy_url: Relay prefix the calendar URL is appended to
            use_proxy: Fetch through the relay instead of directly
            ttl_seconds: How long a fetched calendar stays fresh
            window_days: Day distance still counted as a near-date match
            timeout: HTTP timeout (seconds)
            max_retries: Maximum attempts per fetch
            retry_delay: Delay between attempts (seconds)
            clock: Returns the current time as epoch seconds
        """
        self.cache = cache
        self.calendar_url = calendar_url
        self.proxy_url = proxy_url
        self.use_proxy = use_proxy
        self.ttl_seconds = ttl_seconds
        self.window_days = window_days
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.clock = clock
        self._session_cache: Optional[Dict] = None

    @property
    def fetch_url(self) -> str:
        if self.use_proxy:
            return f"{self.proxy_url}{quote(self.calendar_url, safe='')}"
        return self.calendar_url

    def today(self) -> date:
        return date.fromtimestamp(self.clock())

    def set_use_proxy(self, use_proxy: bool):
        self.use_proxy = use_proxy
        logger.info(f"Calendar fetcher set to {'proxy' if use_proxy else 'direct'} mode")

    def fetch_all_events(self) -> List[Dict]:
        """
        Return every known event, newest first.

        Reads the durable cache, then the in-session cache, then the network.
        If the network fails, an expired in-session cache is returned as is,
        and without one the fallback listings are. Never raises.
        """
        now = self.clock()

        entry = self._read_durable_cache(now)
        if entry is not None:
            logger.debug("Using durable calendar cache")
            self._session_cache = entry
            return list(entry["events"])

        if self._session_cache is not None and now < self._session_cache["expiry_timestamp"]:
            logger.debug("Using in-session calendar cache")
            return list(self._session_cache["events"])

        logger.info(f"Fetching events from {self.fetch_url}")
        try:
            html = self._make_request()
            if html is None:
                raise ConnectionError(f"Could not fetch {self.calendar_url}")

            events = parse_events(html, self.calendar_url)
            if not events:
                logger.warning("No events found in calendar page, using fallback data")
                events = generate_fallback_events(self.today())

        except Exception as e:
            logger.warning(f"Calendar fetch failed: {e}")
            if self._session_cache is not None and self._session_cache["events"]:
                logger.warning("Using expired calendar cache")
                return list(self._session_cache["events"])
            logger.warning("No cached events, using fallback data")
            return generate_fallback_events(self.today())

        self._store(events, now)
        logger.info(f"Extracted {len(events)} events")
        return list(events)

    def get_event_for_date(self, date_text: str) -> Dict:
        """
        Look up events on, or near, a date.

        Args:
            date_text: Date as typed, e.g. "2024-06-15", "15/06/2024", "June 15, 2024"

        Returns:
            Dictionary with ``found``; exact matches carry ``event`` and
            ``events``, near matches ``events``, misses a ``message``
        """
        target = normalize_query_date(date_text)
        if target is None:
            return {
                "found": False,
                "error": "invalid_format",
                "date": None,
                "message": f"I couldn't understand the date '{date_text}'. Try a format like 2024-06-15.",
            }

        try:
            events = self.fetch_all_events()

            exact = [e for e in events if e["date"] == target]
            if exact:
                logger.debug(f"Found exact date match for {target}")
                return {"found": True, "exact": True, "date": target, "event": exact[0], "events": exact}

            target_day = to_date(target)
            nearby = []
            for event in events:
                event_day = to_date(event["date"])
                if event_day is not None and abs((event_day - target_day).days) <= self.window_days:
                    nearby.append(event)

            if nearby:
                nearby.sort(key=lambda e: abs((to_date(e["date"]) - target_day).days))
                return {"found": True, "exact": False, "date": target, "events": nearby}

            logger.debug(f"No event found for {target}")
            return {
                "found": False,
                "date": target,
                "message": (
                    f"I don't have information about an event on {target}. "
                    "I can check with the manager for you."
                ),
            }

        except Exception as e:
            logger.error(f"Error getting event for {target}: {e}")
            return {
                "found": False,
                "error": str(e),
                "date": target,
                "message": "Error fetching event information",
            }

    def refresh_event_cache(self) -> List[Dict]:
        """Drop both cache layers and fetch again."""
        logger.info("Forcing calendar cache refresh")
        self._session_cache = None
        if self.cache is not None:
            self.cache.remove(CALENDAR_CACHE_KEY)
        return self.fetch_all_events()

    def _make_request(self) -> Optional[str]:
        """Fetch the calendar page with retry logic."""
        for attempt in range(self.max_retries):
            try:
                response = requests.get(
                    self.fetch_url,
                    headers={"User-Agent": "Studio338-Agent-Tech/1.0", "Accept": "text/html"},
                    timeout=self.timeout,
                )
                response.raise_for_status()
                return response.text

            except requests.exceptions.RequestException as e:
                logger.warning(f"Request failed (attempt {attempt + 1}/{self.max_retries}): {e}")
                if attempt < self.max_retries - 1:
                    time.sleep(self.retry_delay)

        logger.error("All retry attempts failed")
        return None

    def _read_durable_cache(self, now: float) -> Optional[Dict]:
        """Valid cache entry from the durable store; invalid or expired ones are removed."""
        if self.cache is None:
            return None

        cached = self.cache.get(CALENDAR_CACHE_KEY)
        if not cached:
            return None

        try:
            entry = json.loads(cached)
            expired = now > float(entry["expiry_timestamp"])
            if not isinstance(entry["events"], list):
                raise ValueError("events is not a list")
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding corrupt calendar cache: {e}")
            self.cache.remove(CALENDAR_CACHE_KEY)
            return None

        if expired:
            logger.debug("Durable calendar cache expired")
            self.cache.remove(CALENDAR_CACHE_KEY)
            return None

        return entry

    def _store(self, events: List[Dict], now: float):
        entry = {
            "events": events,
            "fetch_timestamp": now,
            "expiry_timestamp": now + self.ttl_seconds,
        }
        self._session_cache = entry
        if self.cache is not None:
            self.cache.set(CALENDAR_CACHE_KEY, json.dumps(entry, ensure_ascii=False))
