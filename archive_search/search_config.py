"""Search configuration: mode enums, hybrid weights and the SearchRequest dataclass."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from archive_search.errors import InvalidInput

# Hybrid fusion weights. When lexical search returns nothing the vector side
# takes the whole weight.
HYBRID_VECTOR_WEIGHT = 0.55
HYBRID_LEXICAL_WEIGHT = 0.45

DEFAULT_SEARCH_LIMIT = 1000


class SearchMode(str, Enum):
    """Available retrieval modes."""

    LEXICAL = "bm25"
    VECTOR = "vector"
    HYBRID = "hybrid"


class RecordType(str, Enum):
    """Record collections held by the datastore."""

    CHUNKS = "chunks"
    TESTIMONIES = "testimonies"


@dataclass(frozen=True)
class SearchRequest:
    """Immutable description of one retrieval call.

    ``story_id`` is ``None`` for corpus-wide search. Any other value scopes
    the search to one recording, and a blank value yields no results rather
    than widening the search to the whole corpus.

    ``min_value``/``max_value`` bound the *final* score of each hit; ``None``
    leaves that side open.
    """

    term: str
    mode: SearchMode = SearchMode.HYBRID
    record_type: RecordType = RecordType.CHUNKS
    limit: int = DEFAULT_SEARCH_LIMIT
    offset: int = 0
    ner_labels: tuple[str, ...] = field(default_factory=tuple)
    collection_ids: tuple[str, ...] = field(default_factory=tuple)
    story_id: str | None = None
    min_value: float | None = None
    max_value: float | None = None
    properties: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        if self.limit < 0:
            raise InvalidInput(f"limit must be non-negative, got {self.limit}")
        if self.offset < 0:
            raise InvalidInput(f"offset must be non-negative, got {self.offset}")
        if (
            self.min_value is not None
            and self.max_value is not None
            and self.min_value > self.max_value
        ):
            raise InvalidInput(
                f"min_value {self.min_value} is greater than max_value {self.max_value}"
            )
