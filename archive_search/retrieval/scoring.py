"""Score normalization and range checks."""

from __future__ import annotations

from collections.abc import Sequence


def normalize_scores(scores: Sequence[float]) -> list[float]:
    """Min-max rescale raw relevance scores to [0, 1].

    When every score is equal (including a single score) each one maps to
    1.0. An empty input gives an empty output.

    Example:
        >>> normalize_scores([2.0, 4.0, 6.0])
        [0.0, 0.5, 1.0]
        >>> normalize_scores([3.3, 3.3])
        [1.0, 1.0]
    """
    if not scores:
        return []
    lo = min(scores)
    hi = max(scores)
    if hi == lo:
        return [1.0] * len(scores)
    span = hi - lo
    return [(s - lo) / span for s in scores]


def clamp_unit(value: float) -> float:
    """Clamp a score into [0, 1].

    Vector certainty is expected in [0, 1] already; anything outside is
    clamped so fused scores stay in range.
    """
    return min(1.0, max(0.0, value))


def in_range(score: float, min_value: float | None, max_value: float | None) -> bool:
    """Return True if ``score`` lies in ``[min_value, max_value]``; ``None`` is open."""
    if min_value is not None and score < min_value:
        return False
    if max_value is not None and score > max_value:
        return False
    return True
