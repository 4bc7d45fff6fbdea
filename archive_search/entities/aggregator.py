"""Entity aggregation: distinct-recording counts per (entity text, label).

Three entry points share one key rule, ``lower(trim(text)) + "|" + trim(label)``:

- live lookups for a small batch of entities (one bounded fetch per entity),
- cross-collection mention search returning full chunks,
- a bulk rebuild that scans the whole chunk corpus and persists a snapshot.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from archive_search.config import settings
from archive_search.entities.snapshot import load_snapshot, write_snapshot
from archive_search.errors import InvalidInput
from archive_search.filters import NER_LABELS_FIELD, NER_TEXT_FIELD, STORY_ID_FIELD, entity_filter
from archive_search.models import Chunk, EntityRef
from archive_search.search_config import RecordType
from archive_search.storage import ArchiveStore, SupabaseArchiveStore

logger = logging.getLogger(__name__)

MENTION_PROPERTIES: tuple[str, ...] = (
    "interview_title",
    "start_time",
    "end_time",
    "speaker",
    "transcription",
    "ner_labels",
    STORY_ID_FIELD,
)
SCAN_PROPERTIES: tuple[str, ...] = (NER_TEXT_FIELD, NER_LABELS_FIELD, STORY_ID_FIELD)


def entity_key(text: str, label: str) -> str:
    """Normalized Entity Occurrence Key.

    Text is trimmed and lowercased, label is only trimmed, so
    ``("Paris ", "LOC")`` and ``("paris", "LOC")`` collide while
    ``("paris", "loc")`` does not.
    """
    return f"{str(text).strip().lower()}|{str(label).strip()}"


def format_mention_count(count: int, cap: int) -> str:
    """Render a mention count, as an open lower bound (``"10,000+"``) at the cap."""
    if cap > 0 and count >= cap:
        return f"{cap:,}+"
    return f"{count:,}"


def _as_entity(entity: EntityRef | Mapping[str, Any] | tuple[str, str]) -> EntityRef:
    if isinstance(entity, EntityRef):
        return entity
    if isinstance(entity, Mapping):
        return EntityRef(text=str(entity.get("text", "")), label=str(entity.get("label", "")))
    text, label = entity
    return EntityRef(text=str(text), label=str(label))


class RebuildStatus(str, Enum):
    """Outcome of a bulk snapshot rebuild."""

    COMPLETE = "complete"
    # The scan reached the backend result ceiling before the corpus ended.
    CACHE_PARTIAL = "cache_partial"
    CANCELLED = "cancelled"


@dataclass
class RebuildResult:
    """What a bulk rebuild produced."""

    status: RebuildStatus
    counts: dict[str, int] = field(default_factory=dict)
    chunks_scanned: int = 0
    pages: int = 0
    snapshot_path: Path | None = None


class EntityAggregator:
    """Computes and serves entity → distinct-recording-count mappings."""

    def __init__(
        self,
        store: ArchiveStore | None = None,
        snapshot_path: str | Path | None = None,
        lookup_page_size: int | None = None,
        rebuild_page_size: int | None = None,
        result_ceiling: int | None = None,
    ) -> None:
        self._store = store
        self.snapshot_path = Path(snapshot_path or settings.entity_counts_path)
        self.lookup_page_size = (
            settings.recording_count_page_size if lookup_page_size is None else lookup_page_size
        )
        self.rebuild_page_size = (
            settings.rebuild_page_size if rebuild_page_size is None else rebuild_page_size
        )
        self.result_ceiling = (
            settings.backend_result_ceiling if result_ceiling is None else result_ceiling
        )
        if min(self.lookup_page_size, self.rebuild_page_size, self.result_ceiling) <= 0:
            raise InvalidInput("page sizes and the result ceiling must be positive")

    @property
    def store(self) -> ArchiveStore:
        if self._store is None:
            self._store = SupabaseArchiveStore()
        return self._store

    # ------------------------------------------------------------------
    # Live lookups
    # ------------------------------------------------------------------

    def count_recordings(self, text: str, label: str) -> int:
        """Distinct recordings mentioning one entity, from one bounded fetch."""
        if not text.strip() or not label.strip():
            return 0
        objects = self.store.fetch_objects(
            RecordType.CHUNKS,
            entity_filter(text, label),
            limit=min(self.lookup_page_size, self.result_ceiling),
            properties=(STORY_ID_FIELD,),
        )
        return len({o.properties.get(STORY_ID_FIELD) for o in objects} - {None, ""})

    def get_recording_counts(
        self,
        entities: Iterable[EntityRef | Mapping[str, Any] | tuple[str, str]],
        use_cache: bool = False,
    ) -> dict[str, int]:
        """Distinct-recording count per entity key.

        Each entity is queried on its own; a failure for one entity is logged
        and reported as 0 without affecting the others. With ``use_cache``
        the persisted snapshot answers first and only misses go live.
        """
        cached = self.load_cached_counts() if use_cache else {}
        result: dict[str, int] = {}
        for entity in map(_as_entity, entities):
            key = entity_key(entity.text, entity.label)
            if key in result:
                continue
            if key in cached:
                result[key] = cached[key]
                continue
            try:
                result[key] = self.count_recordings(entity.text, entity.label)
            except Exception:
                logger.exception(
                    "Recording count lookup failed for entity %r (%s)", entity.text, entity.label
                )
                result[key] = 0
        return result

    def search_entity_across_collection(
        self,
        text: str,
        label: str,
        exclude_story_id: str | None = None,
        limit: int | None = None,
    ) -> list[Chunk]:
        """Chunks elsewhere in the archive that mention an entity.

        ``limit`` is capped at the backend result ceiling; a result of
        exactly ``limit`` chunks is a lower bound, see
        :func:`format_mention_count`.
        """
        limit = min(settings.entity_search_limit if limit is None else limit, self.result_ceiling)
        if limit <= 0:
            return []
        objects = self.store.fetch_objects(
            RecordType.CHUNKS,
            entity_filter(text, label, exclude_story_id),
            limit=limit,
            properties=MENTION_PROPERTIES,
        )
        chunks = [Chunk.from_store_object(o) for o in objects]
        if exclude_story_id:
            chunks = [c for c in chunks if c.story_id != exclude_story_id.strip()]
        return chunks

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def load_cached_counts(self) -> dict[str, int]:
        """The persisted snapshot, or an empty map if there is none."""
        return load_snapshot(self.snapshot_path)

    def rebuild_recording_counts_snapshot(
        self,
        cancel: threading.Event | None = None,
        write: bool = True,
    ) -> RebuildResult:
        """Scan every chunk page by page and rebuild the snapshot.

        Pages are fetched strictly in sequence. The scan never asks for rows
        past the backend result ceiling; if it has to stop there the result
        is :attr:`RebuildStatus.CACHE_PARTIAL`. Setting ``cancel`` stops the
        scan between pages and nothing is written. A scan that finds no
        entities leaves the existing snapshot in place. A backend failure
        propagates and nothing is written.
        """
        key_to_ids: dict[str, set[str]] = {}
        offset = 0
        pages = 0
        scanned = 0
        status = RebuildStatus.COMPLETE

        while True:
            if cancel is not None and cancel.is_set():
                status = RebuildStatus.CANCELLED
                break
            limit = min(self.rebuild_page_size, self.result_ceiling - offset)
            if limit <= 0:
                status = RebuildStatus.CACHE_PARTIAL
                logger.warning(
                    "Entity count scan stopped at the backend result ceiling (%d rows); "
                    "the snapshot may be incomplete",
                    self.result_ceiling,
                )
                break

            objects = self.store.fetch_objects(
                RecordType.CHUNKS, None, limit=limit, offset=offset, properties=SCAN_PROPERTIES
            )
            pages += 1
            scanned += len(objects)
            for obj in objects:
                _accumulate(key_to_ids, obj.properties)

            if pages % 10 == 0:
                logger.info("Scanned %d chunks (%d keys so far)", scanned, len(key_to_ids))
            if len(objects) < limit:
                break
            offset += limit

        counts = {key: len(ids) for key, ids in sorted(key_to_ids.items())}
        result = RebuildResult(status=status, counts=counts, chunks_scanned=scanned, pages=pages)
        if status is RebuildStatus.CANCELLED:
            logger.info("Entity count rebuild cancelled after %d chunks; snapshot unchanged", scanned)
            return result
        if not counts:
            logger.warning(
                "Entity count scan found no entities in %d chunks; keeping existing snapshot %s",
                scanned,
                self.snapshot_path,
            )
            return result
        if write:
            result.snapshot_path = write_snapshot(counts, self.snapshot_path)
        return result


def _accumulate(key_to_ids: dict[str, set[str]], props: Mapping[str, Any]) -> None:
    """Add one chunk's (text, label) pairs to the key → recording-ids map."""
    story_id = props.get(STORY_ID_FIELD)
    if not story_id:
        return
    texts = props.get(NER_TEXT_FIELD)
    labels = props.get(NER_LABELS_FIELD)
    if not isinstance(texts, list) or not isinstance(labels, list):
        return
    # Parallel arrays; a length mismatch only pairs the common prefix
    for text, label in zip(texts, labels, strict=False):
        text = str(text if text is not None else "").strip()
        label = str(label if label is not None else "").strip()
        if not text or not label:
            continue
        key_to_ids.setdefault(entity_key(text, label), set()).add(str(story_id))


def get_recording_counts(
    entities: list[dict[str, str]],
    use_cache: bool = False,
    aggregator: EntityAggregator | None = None,
) -> dict[str, int]:
    """Plain-data wrapper: ``[{"text": ..., "label": ...}]`` → ``{"text|label": n}``."""
    return (aggregator or EntityAggregator()).get_recording_counts(entities, use_cache=use_cache)


def search_entity_across_collection(
    text: str,
    label: str,
    exclude_story_id: str | None = None,
    limit: int | None = None,
    aggregator: EntityAggregator | None = None,
) -> dict[str, object]:
    """Plain-data wrapper returning the mentions plus a display-ready count."""
    aggregator = aggregator or EntityAggregator()
    cap = min(settings.entity_search_limit if limit is None else limit, aggregator.result_ceiling)
    chunks = aggregator.search_entity_across_collection(text, label, exclude_story_id, cap)
    return {
        "objects": [c.to_dict() for c in chunks],
        "mention_count": len(chunks),
        "mention_count_display": format_mention_count(len(chunks), cap),
    }
