"""
Catalog sources.

A source resolves a locator string (as recorded in the ChunkManifest) to a
list of ConfigEntry records. Fetch and parse failures are reported as
PartitionLoadError so the loader can retry them uniformly.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol

import httpx
import yaml
from pydantic import ValidationError

from siterules.catalog.schemas import ConfigEntry
from siterules.errors import PartitionLoadError
from siterules.utils.logging import get_logger

logger = get_logger(__name__)


class CatalogSource(Protocol):
    """Resolves catalog locators to entries."""

    async def fetch(self, locator: str) -> list[ConfigEntry]: ...

    async def close(self) -> None: ...


def parse_catalog(data: Any, locator: str = "<memory>") -> list[ConfigEntry]:
    """Parse raw catalog data into entries.

    Accepts a mapping of entry name -> entry fields, or a list of entry
    mappings carrying their own ``name``. Invalid entries are logged and
    skipped so one bad record does not cost the whole partition.

    Args:
        data: Decoded YAML/JSON document.
        locator: Where the data came from (for logs and errors).

    Returns:
        Parsed entries in document order.

    Raises:
        PartitionLoadError: If the document is neither a mapping nor a list.
    """
    if data is None:
        return []

    if isinstance(data, Mapping):
        items = [
            (str(name), {**raw, "name": str(name)} if isinstance(raw, Mapping) else raw)
            for name, raw in data.items()
        ]
    elif isinstance(data, list):
        items = []
        for position, raw in enumerate(data):
            if isinstance(raw, Mapping):
                name = raw.get("name") or raw.get("domain") or f"entry-{position}"
                items.append((str(name), {**raw, "name": str(name)}))
            else:
                items.append((f"entry-{position}", raw))
    else:
        raise PartitionLoadError(locator, f"unexpected catalog type {type(data).__name__}")

    entries: list[ConfigEntry] = []
    for name, raw in items:
        if not isinstance(raw, Mapping):
            logger.warning("Skipping non-mapping catalog entry", locator=locator, entry=name)
            continue
        try:
            entries.append(ConfigEntry.model_validate(raw))
        except ValidationError as e:
            logger.warning(
                "Skipping invalid catalog entry",
                locator=locator,
                entry=name,
                error=str(e),
            )

    return entries


class FileCatalogSource:
    """Reads catalog partitions from YAML or JSON files under a base directory."""

    def __init__(self, base_dir: Path | str):
        self._base_dir = Path(base_dir)

    def _resolve(self, locator: str) -> Path:
        path = Path(locator)
        return path if path.is_absolute() else self._base_dir / path

    def _read(self, path: Path) -> Any:
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f)

    async def fetch(self, locator: str) -> list[ConfigEntry]:
        path = self._resolve(locator)
        try:
            data = await asyncio.to_thread(self._read, path)
        except OSError as e:
            raise PartitionLoadError(locator, f"cannot read {path}: {e}") from e
        except yaml.YAMLError as e:
            raise PartitionLoadError(locator, f"cannot parse {path}: {e}") from e

        return parse_catalog(data, locator)

    async def close(self) -> None:
        return None


class HttpCatalogSource:
    """Fetches catalog partitions over HTTP(S).

    Locators are resolved against ``base_url``. Bodies may be JSON or YAML.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._base_url = base_url
        self._timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def fetch(self, locator: str) -> list[ConfigEntry]:
        client = await self._get_client()
        try:
            response = await client.get(locator)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PartitionLoadError(
                locator, f"HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise PartitionLoadError(locator, f"request failed: {e}") from e

        try:
            data = yaml.safe_load(response.text)
        except yaml.YAMLError as e:
            raise PartitionLoadError(locator, f"cannot parse response: {e}") from e

        return parse_catalog(data, locator)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
