"""
Key Resolvers: map a logical key to its backing file(s).

Two strategies share one interface so a single ContentStore serves both
key variants:

- NameKeyResolver: ``root / name``. O(1), never ambiguous.
- IdKeyResolver: the extension is inferred at store time, so lookup scans
  the directory for ``<id>`` and ``<id>.*``. Matches are ordered
  lexicographically by file name; the first one is the resolved file.

In-flight temporary files are hidden (leading dot) and never match.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Generic, Optional, TypeVar

from fileshare.core import constants as C
from fileshare.core.types import ContentId, ContentName, Result

logger = logging.getLogger(__name__)

K = TypeVar("K", ContentId, ContentName)


class KeyResolver(ABC, Generic[K]):
    """Abstract key-to-path strategy."""

    __slots__ = ("_root",)

    #: Whether the store must run signature detection to pick a file name
    infers_extension: bool = False

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    @abstractmethod
    def parse(self, raw: str) -> Result[K, str]:
        """Parse a raw string (URL segment, CLI argument) into a key."""

    @abstractmethod
    def resolve_all(self, key: K) -> list[Path]:
        """Every existing file for the key, in tie-break order."""

    @abstractmethod
    def target_for(self, key: K, extension: str) -> Path:
        """Path a new store of ``key`` writes to."""

    def resolve(self, key: K) -> Optional[Path]:
        """The single file the key currently maps to, if any."""
        matches = self.resolve_all(key)
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning(
                "Key %s is ambiguous; resolved to %s",
                key,
                matches[0].name,
                extra={"key": str(key), "candidates": [p.name for p in matches]},
            )
        return matches[0]

    @staticmethod
    def extension_of(path: Path, key: K) -> str:
        """Extension part of a resolved file name, without the dot."""
        stem = str(key)
        name = path.name
        if name.startswith(stem + "."):
            return name[len(stem) + 1:]
        return ""


class NameKeyResolver(KeyResolver[ContentName]):
    """Caller-supplied names map verbatim to file names."""

    __slots__ = ()

    def parse(self, raw: str) -> Result[ContentName, str]:
        return ContentName.from_string(raw)

    def resolve_all(self, key: ContentName) -> list[Path]:
        path = self._root / key.value
        return [path] if path.is_file() else []

    def target_for(self, key: ContentName, extension: str) -> Path:
        return self._root / key.value

    @staticmethod
    def extension_of(path: Path, key: ContentName) -> str:
        return path.suffix[1:] if path.suffix else ""


class IdKeyResolver(KeyResolver[ContentId]):
    """Opaque ids map to ``<id>.<inferred-extension>`` via a directory scan."""

    __slots__ = ()

    infers_extension = True

    def parse(self, raw: str) -> Result[ContentId, str]:
        return ContentId.from_string(raw)

    def resolve_all(self, key: ContentId) -> list[Path]:
        stem = str(key)
        prefix = stem + "."
        matches: list[str] = []
        try:
            with os.scandir(self._root) as entries:
                for entry in entries:
                    name = entry.name
                    if name.startswith(C.TEMP_FILE_PREFIX):
                        continue
                    if name != stem and not name.startswith(prefix):
                        continue
                    if entry.is_file():
                        matches.append(name)
        except FileNotFoundError:
            return []
        return [self._root / name for name in sorted(matches)]

    def target_for(self, key: ContentId, extension: str) -> Path:
        name = f"{key}.{extension}" if extension else str(key)
        return self._root / name


def temp_path_for(target: Path) -> Path:
    """Hidden in-flight path next to ``target``."""
    return target.with_name(f"{C.TEMP_FILE_PREFIX}{target.name}{C.TEMP_FILE_SUFFIX}")
