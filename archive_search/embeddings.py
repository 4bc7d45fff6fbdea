"""Query embedding clients: the local nlp-processor service or OpenAI."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx
from openai import OpenAI, OpenAIError

from archive_search.config import settings
from archive_search.errors import DependencyUnavailable

logger = logging.getLogger(__name__)


class EmbeddingClient(Protocol):
    """Turns a raw query string into a dense vector."""

    def embed(self, text: str) -> list[float]: ...


def _as_vector(raw: object, dependency: str) -> list[float]:
    if not isinstance(raw, list) or not raw:
        raise DependencyUnavailable(dependency, "response did not contain a vector")
    try:
        return [float(x) for x in raw]
    except (TypeError, ValueError) as exc:
        raise DependencyUnavailable(dependency, "vector contains non-numeric values") from exc


class HttpEmbeddingClient:
    """Client for the ``POST /embed`` endpoint of the nlp-processor service.

    The endpoint takes ``{"text": ...}`` and answers ``{"vector": [...], "dim": n}``.
    """

    dependency = "embedding service"

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.base_url = (base_url or settings.embedding_service_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.embedding_timeout_seconds
        self._http = http_client

    def embed(self, text: str) -> list[float]:
        """Embed ``text`` exactly as given (no pre-normalization).

        Raises:
            DependencyUnavailable: on transport errors or a non-success status.
        """
        try:
            if self._http is not None:
                r = self._http.post(f"{self.base_url}/embed", json={"text": text}, timeout=self.timeout)
            else:
                r = httpx.post(f"{self.base_url}/embed", json={"text": text}, timeout=self.timeout)
            r.raise_for_status()
            payload = r.json()
        except httpx.HTTPStatusError as exc:
            logger.warning("Embedding service returned %s", exc.response.status_code)
            raise DependencyUnavailable(
                self.dependency, f"status {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Embedding service unreachable at %s: %s", self.base_url, exc)
            raise DependencyUnavailable(self.dependency, str(exc)) from exc
        except ValueError as exc:
            raise DependencyUnavailable(self.dependency, "response was not valid JSON") from exc

        if not isinstance(payload, dict):
            raise DependencyUnavailable(self.dependency, "response was not a JSON object")
        return _as_vector(payload.get("vector"), self.dependency)


class OpenAIEmbeddingClient:
    """Embed queries with the OpenAI embeddings API."""

    dependency = "openai embeddings"

    def __init__(
        self,
        model: str | None = None,
        client: OpenAI | None = None,
        dimensions: int | None = None,
    ) -> None:
        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions
        self._client = client

    def embed(self, text: str) -> list[float]:
        try:
            client = self._client or OpenAI(api_key=settings.openai_api_key or None)
            response = client.embeddings.create(
                input=[text], model=self.model, dimensions=self.dimensions
            )
        except OpenAIError as exc:
            logger.warning("OpenAI embedding request failed: %s", exc)
            raise DependencyUnavailable(self.dependency, str(exc)) from exc
        if not response.data:
            raise DependencyUnavailable(self.dependency, "response did not contain a vector")
        return _as_vector(response.data[0].embedding, self.dependency)


def get_embedding_client(provider: str | None = None) -> EmbeddingClient:
    """Return the embedding client selected by ``settings.embedding_provider``."""
    provider = (provider or settings.embedding_provider).lower()
    if provider == "http":
        return HttpEmbeddingClient()
    if provider == "openai":
        return OpenAIEmbeddingClient()
    raise ValueError(f"Unknown embedding provider: {provider!r}. Expected 'http' or 'openai'.")
