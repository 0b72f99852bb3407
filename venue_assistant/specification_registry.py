"""
Specification Registry Module
Versioned catalog of the venue's technical inventory, kept in sync with a
local snapshot file or a remote API.
"""

import json
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import requests
from dateutil import parser as date_parser
from loguru import logger

from venue_assistant.storage import KeyValueStore, MemoryStore


SPECIFICATIONS_KEY = "specifications"
SYNC_TIMESTAMP_KEY = "lastSyncTimestamp"
CURRENT_VERSION_NOTE = "Current version"


def parse_timestamp(value) -> Optional[datetime]:
    """Read an ISO string or epoch number as an aware datetime (naive means UTC)."""
    if value is None or value == "":
        return None
    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        parsed = date_parser.isoparse(str(value))
    except (ValueError, OverflowError, OSError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _validate_catalog(catalog) -> Dict:
    if not isinstance(catalog, dict):
        raise ValueError("Specification catalog must be a JSON object")
    if not isinstance(catalog.get("metadata"), dict):
        raise ValueError("Specification catalog is missing metadata")
    if not isinstance(catalog.get("categories"), dict):
        raise ValueError("Specification catalog is missing categories")
    return catalog


class LocalSpecificationSource:
    """Catalog snapshot read from a JSON file."""

    def __init__(self, path: str = "data/specifications.json"):
        self.path = path

    def fetch(self) -> Tuple[str, Dict]:
        with open(self.path, "r", encoding="utf-8") as f:
            catalog = _validate_catalog(json.load(f))
        return catalog["metadata"].get("lastUpdated"), catalog


class RemoteSpecificationSource:
    """Catalog served over HTTP, with a cheap version endpoint."""

    def __init__(self, api_base_url: str = "/api", timeout: int = 30):
        """
        Initialize API source.

        Args:
            api_base_url: Base URL exposing /specifications and /specifications/version
            timeout: HTTP timeout (seconds)
        """
        self.api_base_url = api_base_url.rstrip("/")
        self.timeout = timeout

    def fetch_version(self) -> str:
        response = requests.get(f"{self.api_base_url}/specifications/version", timeout=self.timeout)
        response.raise_for_status()
        return response.json()["timestamp"]

    def fetch_catalog(self) -> Dict:
        response = requests.get(f"{self.api_base_url}/specifications", timeout=self.timeout)
        response.raise_for_status()
        return _validate_catalog(response.json())

    def fetch(self) -> Tuple[str, Dict]:
        return self.fetch_version(), self.fetch_catalog()


class SpecificationRegistry:
    """Holds the active specification catalog and answers lookups against it."""

    def __init__(
        self,
        source=None,
        cache: Optional[KeyValueStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize registry.

        Args:
            source: LocalSpecificationSource or RemoteSpecificationSource
            cache: Durable store for the catalog and its sync timestamp
            clock: Returns the current time as epoch seconds
        """
        self.source = source or LocalSpecificationSource()
        self.cache = cache if cache is not None else MemoryStore()
        self.clock = clock
        self.specs: Optional[Dict] = None
        self.last_sync_timestamp: Optional[str] = None

    @property
    def version(self) -> Optional[str]:
        if self.specs is None:
            return None
        return self.specs["metadata"].get("version")

    def update_settings(self, source=None):
        if source is not None:
            self.source = source
            logger.info(f"Specification source set to {type(source).__name__}")

    def initialize(self) -> bool:
        """Restore the cached catalog, then sync with the source."""
        cached = self.cache.get(SPECIFICATIONS_KEY)
        if cached:
            try:
                self.specs = _validate_catalog(json.loads(cached))
                self.last_sync_timestamp = self.cache.get(SYNC_TIMESTAMP_KEY)
                logger.info(f"Loaded cached specifications version {self.version}")
            except ValueError as e:
                logger.warning(f"Discarding corrupt cached specifications: {e}")
                self.specs = None
                self.last_sync_timestamp = None
                self.cache.remove(SPECIFICATIONS_KEY)
                self.cache.remove(SYNC_TIMESTAMP_KEY)

        return self.sync_specifications()

    def sync_specifications(self) -> bool:
        """
        Replace the held catalog if the source has a newer one.

        Returns:
            True if the catalog was replaced; False if it was current or the
            source could not be read
        """
        try:
            fetch_version = getattr(self.source, "fetch_version", None)
            if fetch_version is not None:
                timestamp = fetch_version()
                if not self._needs_update(timestamp):
                    return False
                catalog = self.source.fetch_catalog()
            else:
                timestamp, catalog = self.source.fetch()
                if not self._needs_update(timestamp):
                    return False

        except (requests.exceptions.RequestException, OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Failed to sync specifications: {e}")
            return False

        self.specs = catalog
        self.last_sync_timestamp = str(timestamp)
        self.cache.set(SPECIFICATIONS_KEY, json.dumps(catalog, ensure_ascii=False))
        self.cache.set(SYNC_TIMESTAMP_KEY, self.last_sync_timestamp)

        logger.info(f"Technical specifications updated to version: {self.version}")
        return True

    def get_item_by_id(self, item_id: str) -> Optional[Dict]:
        """First item with this id in catalog order."""
        for _, _, item in self._iter_items():
            if item.get("id") == item_id:
                return item
        return None

    def get_items_by_category(self, category: str, subcategory: Optional[str] = None) -> List[Dict]:
        if self.specs is None:
            return []

        category_data = self.specs["categories"].get(category)
        if not isinstance(category_data, dict):
            return []

        if subcategory:
            return category_data.get(subcategory) or []

        items = []
        for subcategory_items in category_data.values():
            if isinstance(subcategory_items, list):
                items.extend(subcategory_items)
        return items

    def get_change_history(self, item_id: str) -> List[Dict]:
        """
        Previous versions of an item plus its current state, newest first.

        The current state is the item's own fields with changeNote set to
        "Current version".
        """
        item = self.get_item_by_id(item_id)
        if item is None:
            return []

        history = [dict(v) for v in item.get("previousVersions") or [] if isinstance(v, dict)]
        current = {k: v for k, v in item.items() if k != "previousVersions"}
        current["changeNote"] = CURRENT_VERSION_NOTE
        history.insert(0, current)

        oldest = datetime.min.replace(tzinfo=timezone.utc)
        return sorted(
            history,
            key=lambda v: parse_timestamp(v.get("lastUpdated")) or oldest,
            reverse=True,
        )

    def get_recent_changes(self, days: int = 30) -> List[Dict]:
        if self.specs is None or not isinstance(self.specs.get("changeLog"), list):
            return []

        cutoff = datetime.fromtimestamp(self.clock(), tz=timezone.utc) - timedelta(days=days)

        recent = []
        for change in self.specs["changeLog"]:
            changed_at = parse_timestamp(change.get("date"))
            if changed_at is not None and changed_at >= cutoff:
                recent.append((changed_at, change))

        recent.sort(key=lambda pair: pair[0], reverse=True)
        return [change for _, change in recent]

    def find_items(self, text: str) -> List[Dict]:
        """Items whose id or name appears in free text ("cdj-3000" matches "CDJ 3000")."""
        normalized = _normalize(text)
        matches = []
        for _, _, item in self._iter_items():
            candidates = [_normalize(str(item.get(field, ""))) for field in ("id", "name")]
            if any(c and re.search(rf"\b{re.escape(c)}\b", normalized) for c in candidates):
                matches.append(item)
        return matches

    def estimate_budget(self, item_ids: Sequence[str], vat_rate: float = 0.2) -> Dict:
        """
        Hire cost of a selection of items.

        Args:
            item_ids: Item ids, repeated for multiple units
            vat_rate: VAT applied to the subtotal

        Returns:
            Dictionary with items, missing ids, subtotal, vat, total and currency
        """
        items = []
        missing = []
        for item_id in item_ids:
            item = self.get_item_by_id(item_id)
            if item is None:
                missing.append(item_id)
            else:
                items.append(item)

        subtotal = sum(float(item.get("cost") or 0) for item in items)
        vat = subtotal * vat_rate
        return {
            "items": items,
            "missing": missing,
            "subtotal": round(subtotal, 2),
            "vat": round(vat, 2),
            "total": round(subtotal + vat, 2),
            "currency": items[0].get("currency", "GBP") if items else "GBP",
        }

    def _needs_update(self, timestamp) -> bool:
        if self.specs is None or not self.last_sync_timestamp:
            return True

        remembered = parse_timestamp(self.last_sync_timestamp)
        if remembered is None:
            return True

        candidate = parse_timestamp(timestamp)
        if candidate is None:
            raise ValueError(f"Unreadable specification timestamp: {timestamp!r}")
        return candidate > remembered

    def _iter_items(self) -> Iterator[Tuple[str, str, Dict]]:
        if self.specs is None:
            return
        for category, subcategories in self.specs["categories"].items():
            if not isinstance(subcategories, dict):
                continue
            for subcategory, items in subcategories.items():
                if not isinstance(items, list):
                    continue
                for item in items:
                    if isinstance(item, dict):
                        yield category, subcategory, item


def _normalize(text: str) -> str:
    return re.sub(r"[\s_\-]+", " ", text.lower()).strip()
