"""
provisioner.orchestration.state_store - Persistent State Store
================================================================

The durable memory of the pipeline: an ordered map of string keys to string
values that survives process restarts, so a re-run (or a run after a failure)
picks up names, derived values and generated credentials from earlier runs.

Architecture:

    ┌──────────────┐   put(key, value)  ┌──────────────────┐   atomic rewrite
    │ PipelineCtx  │ ─────────────────→ │                  │ ─────────────→ .env (0600)
    │              │                    │   State Store    │
    │              │ ←───────────────── │                  │ ─────────────→ os.environ
    └──────────────┘     get(key)       └──────────────────┘   export

File Format:
    One ``KEY='value'`` entry per line, shell-compatible. A single quote
    inside a value is written as ``'"'"'`` (close, double-quoted quote,
    reopen). Values may contain spaces and newlines. On read, blank lines,
    ``#`` comments and an ``export`` prefix are tolerated.

Write Semantics:
    ``put`` removes the prior entry for the key, appends the new one at the
    end, and rewrites the whole file through a temp file in the same
    directory followed by ``os.replace``. A crash never leaves a partially
    written file. The store assumes a single writer; there is no locking.

Implementations:
    - StateStore (ABC):     Abstract interface
    - FileStateStore:       The ``.env`` file
    - InMemoryStateStore:   Dict-based, for tests
"""

from __future__ import annotations

import logging
import os
import re
import shlex
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import MutableMapping, Optional

from provisioner.core.exceptions import StateError

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_QUOTE_ESCAPE = "'\"'\"'"


# =============================================================================
# Encoding
# =============================================================================
def encode_entry(key: str, value: str) -> str:
    """Render one ``KEY='value'`` line (no trailing newline)."""
    return f"{key}='{value.replace(chr(39), _QUOTE_ESCAPE)}'"


def parse_entries(text: str) -> dict[str, str]:
    """Parse state file text into an ordered KEY → value mapping.

    Values are shell words, tokenized with ``shlex`` in POSIX mode: quoted
    segments may span lines, ``#`` starts a comment and an ``export`` prefix
    is skipped. A later duplicate key replaces the earlier one.

    Raises:
        StateError: On a malformed entry or an unterminated quote.
    """
    try:
        tokens = shlex.split(text, comments=True, posix=True)
    except ValueError as e:
        raise StateError(
            message=f"Cannot parse state file: {e}",
            error_code="STATE_PARSE_ERROR",
            hint="Check the file for an unterminated quote.",
        ) from e

    entries: dict[str, str] = {}
    for token in tokens:
        if token == "export":
            continue
        key, sep, value = token.partition("=")
        if not sep or not _KEY_PATTERN.fullmatch(key):
            raise StateError(
                message=f"Malformed state entry: {token!r}",
                error_code="STATE_PARSE_ERROR",
                details={"entry": token},
                hint="Each line must look like KEY='value'.",
            )
        entries.pop(key, None)
        entries[key] = value
    return entries


# =============================================================================
# Abstract Base Class: StateStore
# =============================================================================
# Every method is a coroutine so a store backed by a remote system would fit
# the same interface.
# =============================================================================
class StateStore(ABC):
    """Abstract base class for persistent state stores.

    Lifecycle:
        load() exactly once, then any number of get()/put() calls.
        get()/put() before load(), or a second load(), raise StateError.

    Every successful put() is visible to subsequent get() calls, exported to
    the bound environment mapping, and (for durable stores) on disk before
    it returns.
    """

    def __init__(self, environ: Optional[MutableMapping[str, str]] = None) -> None:
        self._environ: MutableMapping[str, str] = os.environ if environ is None else environ
        self._entries: dict[str, str] = {}
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def environ(self) -> MutableMapping[str, str]:
        """The environment mapping entries are exported to."""
        return self._environ

    def _require_loaded(self, operation: str) -> None:
        if not self._loaded:
            raise StateError(
                message=f"State store {operation}() called before load()",
                error_code="STATE_NOT_LOADED",
            )

    async def load(self) -> dict[str, str]:
        """Read all entries and export them to the environment.

        Values already present in the environment are NOT replaced, so
        command-line overrides and pre-set variables win over the file.

        Returns:
            A copy of the loaded entries.

        Raises:
            StateError: If called twice, or the backing data is unreadable.
        """
        if self._loaded:
            raise StateError(
                message="State store load() called more than once",
                error_code="STATE_ALREADY_LOADED",
            )
        self._entries = await self._read()
        for key, value in self._entries.items():
            self._environ.setdefault(key, value)
        self._loaded = True
        return dict(self._entries)

    async def get(self, key: str) -> Optional[str]:
        """Return the stored value for ``key``, or None if absent."""
        self._require_loaded("get")
        return self._entries.get(key)

    async def put(self, key: str, value: str) -> None:
        """Store, persist and export one entry.

        The prior entry for ``key`` (if any) is removed and the new one is
        appended at the end.

        Raises:
            StateError: If not loaded, the key is invalid, or the write fails.
        """
        self._require_loaded("put")
        if not _KEY_PATTERN.fullmatch(key):
            raise StateError(
                message=f"Invalid state key: {key!r}",
                error_code="STATE_INVALID_KEY",
                details={"key": key},
            )
        updated = dict(self._entries)
        updated.pop(key, None)
        updated[key] = value
        await self._write(updated)
        self._entries = updated
        self._environ[key] = value

    def entries(self) -> dict[str, str]:
        """A copy of all entries in file order."""
        self._require_loaded("entries")
        return dict(self._entries)

    @abstractmethod
    async def _read(self) -> dict[str, str]:
        """Read the backing data. Missing data is an empty mapping."""

    @abstractmethod
    async def _write(self, entries: dict[str, str]) -> None:
        """Durably replace the backing data with ``entries``."""


# =============================================================================
# FileStateStore Implementation
# =============================================================================
class FileStateStore(StateStore):
    """State store backed by a ``KEY='value'`` file with mode 0600.

    Example:
        >>> store = FileStateStore(".env")
        >>> await store.load()
        >>> await store.put("REGION", "europe-west1")
        >>> await store.get("REGION")
        'europe-west1'
    """

    def __init__(self, path: str | os.PathLike[str], environ: Optional[MutableMapping[str, str]] = None) -> None:
        super().__init__(environ)
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def _read(self) -> dict[str, str]:
        if not self._path.exists():
            logger.info("State file %s not found, starting with empty state", self._path)
            return {}
        try:
            text = self._path.read_text(encoding="utf-8")
        except OSError as e:
            raise StateError(
                message=f"Cannot read state file {self._path}: {e}",
                details={"path": str(self._path)},
            ) from e
        except UnicodeDecodeError as e:
            raise StateError(
                message=f"State file {self._path} is not valid UTF-8: {e}",
                details={"path": str(self._path)},
                hint="Fix or remove the offending entry; the file must be UTF-8 text.",
            ) from e
        entries = parse_entries(text)
        logger.info("Loaded %d state entries from %s", len(entries), self._path)
        return entries

    async def _write(self, entries: dict[str, str]) -> None:
        directory = self._path.parent if str(self._path.parent) else Path(".")
        content = "".join(encode_entry(key, value) + "\n" for key, value in entries.items())

        tmp_path: Optional[str] = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{self._path.name}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self._path)
            tmp_path = None
        except OSError as e:
            raise StateError(
                message=f"Cannot write state file {self._path}: {e}",
                details={"path": str(self._path)},
                hint="Check that the working directory is writable.",
            ) from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)

        logger.debug("Wrote %d state entries to %s", len(entries), self._path)


# =============================================================================
# InMemoryStateStore Implementation
# =============================================================================
class InMemoryStateStore(StateStore):
    """In-memory state store for tests. Same contract, no file.

    Attributes:
        writes: Number of successful writes, for assertions.

    Example:
        >>> store = InMemoryStateStore({"PROJECT_ID": "acme"}, environ={})
        >>> await store.load()
        {'PROJECT_ID': 'acme'}
    """

    def __init__(
        self,
        initial: Optional[dict[str, str]] = None,
        environ: Optional[MutableMapping[str, str]] = None,
    ) -> None:
        super().__init__({} if environ is None else environ)
        self._backing: dict[str, str] = dict(initial or {})
        self.writes = 0

    @property
    def backing(self) -> dict[str, str]:
        """What a re-load in a fresh process would see."""
        return dict(self._backing)

    async def _read(self) -> dict[str, str]:
        return dict(self._backing)

    async def _write(self, entries: dict[str, str]) -> None:
        self._backing = dict(entries)
        self.writes += 1
        logger.debug("Saved %d state entries in memory", len(entries))
