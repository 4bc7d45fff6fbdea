"""Data models shared by the retrieval and aggregation core."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any


@dataclass
class StoreObject:
    """One object returned by the datastore, before ranking.

    ``score`` is the raw lexical relevance, ``certainty``/``distance`` come
    from nearest-vector queries. Unused fields stay ``None``.
    """

    id: str
    properties: dict[str, Any] = field(default_factory=dict)
    score: float | None = None
    certainty: float | None = None
    distance: float | None = None


@dataclass
class Chunk:
    """A ranked transcript segment."""

    id: str
    story_id: str | None = None
    start_time: float | None = None
    end_time: float | None = None
    speaker: str | None = None
    transcription: str = ""
    ner_labels: list[str] = field(default_factory=list)
    ner_text: list[str] = field(default_factory=list)
    properties: dict[str, Any] = field(default_factory=dict)
    score: float = 0.0
    bm25_score: float | None = None
    vector_score: float | None = None
    distance: float | None = None

    @classmethod
    def from_store_object(cls, obj: StoreObject, score: float = 0.0) -> Chunk:
        props = obj.properties
        start = props.get("start_time")
        end = props.get("end_time")
        return cls(
            id=obj.id,
            story_id=props.get("theirstory_id"),
            # bool is an int subclass but never a timestamp
            start_time=float(start)
            if isinstance(start, (int, float)) and not isinstance(start, bool)
            else None,
            end_time=float(end)
            if isinstance(end, (int, float)) and not isinstance(end, bool)
            else None,
            speaker=props.get("speaker"),
            transcription=props.get("transcription") or "",
            ner_labels=list(props.get("ner_labels") or []),
            ner_text=list(props.get("ner_text") or []),
            properties=dict(props),
            score=score,
            distance=obj.distance,
        )

    def to_dict(self) -> dict[str, Any]:
        """Plain-data view for transport collaborators."""
        return {
            "id": self.id,
            "story_id": self.story_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "speaker": self.speaker,
            "transcription": self.transcription,
            "ner_labels": self.ner_labels,
            "ner_text": self.ner_text,
            "properties": self.properties,
            "score": self.score,
            "bm25_score": self.bm25_score,
            "vector_score": self.vector_score,
            "distance": self.distance,
        }


@dataclass
class RankedResultSet:
    """Chunks in non-increasing score order, at most one per start_time."""

    chunks: list[Chunk] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.chunks)

    def __iter__(self) -> Iterator[Chunk]:
        return iter(self.chunks)

    def to_dict(self) -> dict[str, Any]:
        return {
            "objects": [c.to_dict() for c in self.chunks],
            "metadata": dict(self.metadata),
        }


@dataclass
class ListingPage:
    """One page of an un-ranked listing plus whether a further page exists."""

    objects: list[StoreObject] = field(default_factory=list)
    has_next_page: bool = False


@dataclass
class Recording:
    """A top-level interview/testimony."""

    id: str
    title: str = ""
    description: str = ""
    duration: float | None = None
    is_audio: bool = False
    collection_id: str = ""
    collection_name: str = ""
    collection_description: str = ""
    ner_labels: list[str] = field(default_factory=list)
    properties: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_store_object(cls, obj: StoreObject) -> Recording:
        props = obj.properties
        duration = props.get("duration")
        return cls(
            id=obj.id,
            title=props.get("interview_title") or "",
            description=props.get("interview_description") or "",
            duration=float(duration) if isinstance(duration, (int, float)) else None,
            is_audio=bool(props.get("isAudioFile", False)),
            collection_id=str(props.get("collection_id") or ""),
            collection_name=str(props.get("collection_name") or ""),
            collection_description=str(props.get("collection_description") or ""),
            ner_labels=list(props.get("ner_labels") or []),
            properties=dict(props),
        )


@dataclass
class Collection:
    """A logical grouping of recordings."""

    id: str
    name: str
    description: str = ""
    item_count: int = 0
    image: str | None = None


@dataclass(frozen=True)
class EntityRef:
    """An entity as the caller sees it: raw text plus NER label."""

    text: str
    label: str
