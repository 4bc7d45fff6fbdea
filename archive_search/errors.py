"""Error taxonomy for the retrieval and aggregation core."""

from __future__ import annotations


class ArchiveSearchError(Exception):
    """Base class for all archive search errors."""


class InvalidInput(ArchiveSearchError, ValueError):
    """A caller supplied parameters that can never produce a valid query."""


class DependencyUnavailable(ArchiveSearchError):
    """The embedding service or the datastore failed or could not be reached.

    Never converted into an empty result: the operation aborts and no partial
    results are returned.
    """

    def __init__(self, dependency: str, message: str) -> None:
        super().__init__(f"{dependency} unavailable: {message}")
        self.dependency = dependency
