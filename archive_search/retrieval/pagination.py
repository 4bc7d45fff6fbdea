"""Pagination for un-ranked listings without a total-count query."""

from __future__ import annotations

from archive_search.filters import Filter, collection_filter
from archive_search.models import ListingPage
from archive_search.search_config import RecordType
from archive_search.storage import ArchiveStore, SupabaseArchiveStore


def has_next_page(
    store: ArchiveStore,
    record_type: RecordType,
    filters: Filter | None,
    limit: int,
    offset: int,
    returned: int,
) -> bool:
    """Decide whether a page after ``[offset, offset + limit)`` exists.

    A short page (fewer than ``limit`` results) means no next page and costs
    nothing. A full page costs one probe fetch of size 1 at
    ``offset + limit`` with the same filters.
    """
    if limit <= 0 or returned < limit:
        return False
    probe = store.fetch_objects(record_type, filters, limit=1, offset=offset + limit, properties=("id",))
    return len(probe) > 0


def fetch_page(
    store: ArchiveStore,
    record_type: RecordType,
    filters: Filter | None,
    limit: int,
    offset: int = 0,
    properties: tuple[str, ...] | None = None,
) -> ListingPage:
    """Fetch one listing page and probe for the next one."""
    objects = store.fetch_objects(record_type, filters, limit=limit, offset=offset, properties=properties)
    return ListingPage(
        objects=objects,
        has_next_page=has_next_page(store, record_type, filters, limit, offset, len(objects)),
    )


def list_recordings(
    record_type: str | RecordType = RecordType.TESTIMONIES,
    limit: int = 100,
    offset: int = 0,
    collection_ids: list[str] | None = None,
    properties: list[str] | None = None,
    store: ArchiveStore | None = None,
) -> dict[str, object]:
    """List records page by page, optionally scoped to some collections.

    Returns:
        ``{"objects": [{"id": ..., "properties": {...}}, ...], "has_next_page": bool}``.
    """
    page = fetch_page(
        store or SupabaseArchiveStore(),
        RecordType(record_type),
        collection_filter(collection_ids),
        limit=limit,
        offset=offset,
        properties=tuple(properties) if properties else None,
    )
    return {
        "objects": [{"id": o.id, "properties": o.properties} for o in page.objects],
        "has_next_page": page.has_next_page,
    }
