"""
Catalog model and sources.
"""

from siterules.catalog.schemas import (
    COMMENT_SENTINEL,
    ChunkInfo,
    ChunkManifest,
    ConfigEntry,
    CookieMode,
    CookieRule,
    UserAgentTag,
)
from siterules.catalog.source import (
    CatalogSource,
    FileCatalogSource,
    HttpCatalogSource,
    parse_catalog,
)

__all__ = [
    "COMMENT_SENTINEL",
    "CatalogSource",
    "ChunkInfo",
    "ChunkManifest",
    "ConfigEntry",
    "CookieMode",
    "CookieRule",
    "FileCatalogSource",
    "HttpCatalogSource",
    "UserAgentTag",
    "parse_catalog",
]
