"""Filter builder: compose property predicates into one AND-combined filter.

Building is pure. The datastore adapter decides how a :class:`Filter` is
rendered (PostgREST predicates for table fetches, a JSON list for RPC calls).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from archive_search.errors import InvalidInput

NER_LABELS_FIELD = "ner_labels"
NER_TEXT_FIELD = "ner_text"
COLLECTION_ID_FIELD = "collection_id"
STORY_ID_FIELD = "theirstory_id"


class FilterOp(str, Enum):
    """Supported predicate operators."""

    EQUAL = "eq"
    NOT_EQUAL = "neq"
    IN = "in"  # scalar property is one of the values
    CONTAINS_ANY = "overlaps"  # array property shares at least one value


@dataclass(frozen=True)
class Predicate:
    """A single property predicate."""

    field: str
    op: FilterOp
    value: str | tuple[str, ...]

    def to_json(self) -> dict[str, Any]:
        value = list(self.value) if isinstance(self.value, tuple) else self.value
        return {"field": self.field, "op": self.op.value, "value": value}


@dataclass(frozen=True)
class Filter:
    """A conjunction of predicates. Never empty: "no filter" is ``None``."""

    predicates: tuple[Predicate, ...]

    def __and__(self, other: Filter | None) -> Filter:
        if other is None:
            return self
        return Filter(self.predicates + other.predicates)

    def to_json(self) -> list[dict[str, Any]]:
        return [p.to_json() for p in self.predicates]


def _clean(values: list[str] | tuple[str, ...] | None) -> tuple[str, ...]:
    """Drop blank entries and duplicates, keeping first-seen order."""
    if not values:
        return ()
    seen: dict[str, None] = {}
    for v in values:
        v = str(v).strip()
        if v:
            seen.setdefault(v, None)
    return tuple(seen)


def combine(*filters: Filter | None) -> Filter | None:
    """AND together any number of filters, skipping ``None``."""
    predicates: tuple[Predicate, ...] = ()
    for f in filters:
        if f is not None:
            predicates += f.predicates
    return Filter(predicates) if predicates else None


def ner_label_filter(labels: list[str] | tuple[str, ...] | None) -> Filter | None:
    """Match chunks whose entity-label list contains any of ``labels``."""
    cleaned = _clean(labels)
    if not cleaned:
        return None
    return Filter((Predicate(NER_LABELS_FIELD, FilterOp.CONTAINS_ANY, cleaned),))


def collection_filter(collection_ids: list[str] | tuple[str, ...] | None) -> Filter | None:
    """Match records whose collection id is one of ``collection_ids``."""
    cleaned = _clean(collection_ids)
    if not cleaned:
        return None
    return Filter((Predicate(COLLECTION_ID_FIELD, FilterOp.IN, cleaned),))


def story_scope_filter(story_id: str) -> Filter:
    """Exact match on the owning recording id.

    Raises:
        InvalidInput: if ``story_id`` is blank. A blank scope must never
            silently widen into a corpus-wide search.
    """
    story_id = (story_id or "").strip()
    if not story_id:
        raise InvalidInput("story scope requires a non-blank recording id")
    return Filter((Predicate(STORY_ID_FIELD, FilterOp.EQUAL, story_id),))


def build_filter(
    ner_labels: list[str] | tuple[str, ...] | None = None,
    collection_ids: list[str] | tuple[str, ...] | None = None,
    story_id: str | None = None,
) -> Filter | None:
    """Compose entity-label, collection and story-scope predicates.

    Args:
        ner_labels: Entity labels, OR-ed within the field.
        collection_ids: Collection ids, OR-ed within the field.
        story_id: Optional recording scope. ``None`` means unscoped; a blank
            string raises :class:`InvalidInput`.

    Returns:
        The AND of all non-empty predicates, or ``None`` if every input is
        empty.
    """
    scope = story_scope_filter(story_id) if story_id is not None else None
    return combine(scope, ner_label_filter(ner_labels), collection_filter(collection_ids))


def entity_filter(text: str, label: str, exclude_story_id: str | None = None) -> Filter:
    """Match chunks mentioning ``text`` (lowercased) under NER ``label``.

    Entity texts are stored lowercased, so the text is lowercased and trimmed
    here. ``exclude_story_id`` drops one recording (typically the one being
    viewed).
    """
    predicates = [
        Predicate(NER_TEXT_FIELD, FilterOp.CONTAINS_ANY, (text.strip().lower(),)),
        Predicate(NER_LABELS_FIELD, FilterOp.CONTAINS_ANY, (label.strip(),)),
    ]
    if exclude_story_id and exclude_story_id.strip():
        predicates.append(Predicate(STORY_ID_FIELD, FilterOp.NOT_EQUAL, exclude_story_id.strip()))
    return Filter(tuple(predicates))
