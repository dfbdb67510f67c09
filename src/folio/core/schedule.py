"""Publish instants, permalink slugs, and the global publish order"""

from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from folio.core.errors import PermalinkCollision, UnknownTimezone
from folio.core.models import ScheduledDocument
from folio.core.utils.slug import slugify


@lru_cache(maxsize=None)
def resolve_zone(name: str) -> ZoneInfo:
    """Return the IANA zone for name. There is no fallback zone."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        raise UnknownTimezone(f"unknown timezone {name!r}") from e


def localize(date: datetime, tz_name: str) -> datetime:
    """Attach tz_name to a naive wall-clock datetime; aware values are converted into it."""
    zone = resolve_zone(tz_name)
    if date.tzinfo is None:
        return date.replace(tzinfo=zone)
    return date.astimezone(zone)


def publish_instant(date: datetime, tz_name: str) -> datetime:
    """Normalize a (date, timezone) pair to a single UTC instant."""
    return localize(date, tz_name).astimezone(timezone.utc)


def permalink_slug(local_date: datetime, title: str) -> str:
    """YYYY-MM-DD-<title-slug> from the document's local calendar date."""
    title_slug = slugify(title)
    prefix = local_date.strftime("%Y-%m-%d")
    return f"{prefix}-{title_slug}" if title_slug else prefix


def order_documents(docs: Iterable[ScheduledDocument]) -> list[ScheduledDocument]:
    """Most recent first; ties broken by source path ascending."""
    return sorted(docs, key=lambda d: d.sort_key)


class PermalinkIndex:
    """Single-owner accumulator mapping slugs to the source path that claimed them.

    Only the serial reduction stage touches an index. A second claim on a
    slug by a different source raises PermalinkCollision; re-registering the
    same source is a no-op.
    """

    def __init__(self):
        self._owners: dict[str, str] = {}

    def __contains__(self, slug: str) -> bool:
        return slug in self._owners

    def __len__(self) -> int:
        return len(self._owners)

    def owner(self, slug: str) -> str | None:
        return self._owners.get(slug)

    def register(self, slug: str, source: str | Path) -> None:
        source = str(source)
        current = self._owners.get(slug)
        if current is not None and current != source:
            first, second = sorted((current, source))
            raise PermalinkCollision(slug, first, second)
        self._owners[slug] = source
