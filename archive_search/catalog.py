"""Recording and collection lookups.

Collection ids always come from the recording rows. Display name,
description and image may be overridden by a ``collection.json`` file in a
sub-directory of the collections metadata directory.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ValidationError

from archive_search.config import settings
from archive_search.models import Chunk, Collection, Recording
from archive_search.search_config import RecordType
from archive_search.storage import ArchiveStore, SupabaseArchiveStore

logger = logging.getLogger(__name__)

COLLECTION_PROPERTIES = ("collection_id", "collection_name", "collection_description")


class CollectionMetadata(BaseModel):
    """Out-of-band collection metadata read from ``collection.json``."""

    id: str | None = None
    name: str | None = None
    description: str | None = None
    image: str | None = None


def load_collection_metadata(root: str | Path | None = None) -> dict[str, CollectionMetadata]:
    """Map collection id → metadata from ``<root>/<folder>/collection.json``.

    The folder name is the id when the file does not carry one. Folders
    without a readable, valid file are skipped.
    """
    root = Path(root or settings.collections_metadata_dir)
    metadata: dict[str, CollectionMetadata] = {}
    if not root.is_dir():
        return metadata

    for entry in sorted(root.iterdir()):
        if not entry.is_dir():
            continue
        collection_file = entry / "collection.json"
        try:
            parsed = CollectionMetadata.model_validate_json(collection_file.read_text(encoding="utf-8"))
        except (OSError, ValidationError):
            continue
        collection_id = (parsed.id or entry.name).strip()
        if collection_id:
            metadata[collection_id] = parsed
    return metadata


def list_available_collections(
    limit: int = 5000,
    store: ArchiveStore | None = None,
    metadata_root: str | Path | None = None,
) -> list[Collection]:
    """Collections present in the archive, with recording counts.

    Recordings without a collection id are ignored. The result is sorted by
    display name.
    """
    store = store or SupabaseArchiveStore()
    overrides = load_collection_metadata(metadata_root)
    objects = store.fetch_objects(
        RecordType.TESTIMONIES,
        None,
        limit=min(limit, settings.backend_result_ceiling),
        properties=COLLECTION_PROPERTIES,
    )

    collections: dict[str, Collection] = {}
    for obj in objects:
        props = obj.properties
        collection_id = str(props.get("collection_id") or "").strip()
        if not collection_id:
            continue
        existing = collections.get(collection_id)
        if existing is not None:
            existing.item_count += 1
            continue
        meta = overrides.get(collection_id) or CollectionMetadata()
        name = (meta.name or str(props.get("collection_name") or "")).strip() or collection_id
        description = (meta.description or str(props.get("collection_description") or "")).strip()
        image = (meta.image or "").strip() or None
        collections[collection_id] = Collection(
            id=collection_id, name=name, description=description, item_count=1, image=image
        )

    return sorted(collections.values(), key=lambda c: c.name.lower())


def get_recording(recording_id: str, store: ArchiveStore | None = None) -> Recording | None:
    """Fetch one recording by id; ``None`` if it does not exist."""
    obj = (store or SupabaseArchiveStore()).fetch_by_id(RecordType.TESTIMONIES, recording_id)
    return Recording.from_store_object(obj) if obj is not None else None


def get_chunk(chunk_id: str, store: ArchiveStore | None = None) -> Chunk | None:
    """Fetch one transcript chunk by id; ``None`` if it does not exist."""
    obj = (store or SupabaseArchiveStore()).fetch_by_id(RecordType.CHUNKS, chunk_id)
    return Chunk.from_store_object(obj) if obj is not None else None
