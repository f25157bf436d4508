"""Registry Store — durable persistence of the agent registry.

The registry is one JSON document (``agents.json``). Every logical
operation does a fresh load, mutates the in-memory ``Registry`` and saves
the whole document back. Nothing is cached between operations.

Writes go to a temporary file in the same directory and are moved over
the target with ``os.replace``, so readers never observe a half-written
document. Writers are serialized with an advisory lock on
``agents.lock`` held across the whole read-modify-write.
"""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterator

from pydantic import ValidationError

from aku.exceptions import CorruptRegistryError
from aku.types import Registry

_logger = logging.getLogger(__name__)

_DIR_MODE = 0o700
_FILE_MODE = 0o600


def parse_registry(document: str | bytes, source: str = "registry") -> Registry:
    """Parse a registry document, raising CorruptRegistryError on any defect."""
    try:
        return Registry.model_validate_json(document)
    except UnicodeDecodeError as e:
        raise CorruptRegistryError(
            f"{source} is not valid UTF-8 ({e.reason} at byte {e.start}). "
            "Fix or move the file aside; it was left untouched."
        ) from e
    except ValidationError as e:
        raise CorruptRegistryError(
            f"{source} is not a valid agent registry "
            f"({e.error_count()} error(s): {e.errors()[0]['msg']}). "
            "Fix or move the file aside; it was left untouched."
        ) from e


class BaseRegistryStore(ABC):
    """Load/save contract shared by the file and in-memory stores."""

    @abstractmethod
    def load(self) -> Registry:
        """Read the current registry. A missing document is an empty registry."""

    @abstractmethod
    def save(self, registry: Registry) -> None:
        """Replace the persisted document with ``registry``."""

    @abstractmethod
    def locked(self) -> contextlib.AbstractContextManager[None]:
        """Exclusive writer lock, held across a read-modify-write."""

    def initialize(self) -> None:
        """Prepare backing storage. No-op unless the store needs it."""

    @contextlib.contextmanager
    def transaction(self) -> Iterator[Registry]:
        """Locked load → mutate → save. Nothing is saved if the body raises."""
        with self.locked():
            registry = self.load()
            yield registry
            self.save(registry)


class RegistryStore(BaseRegistryStore):
    """Registry persisted as ``agents.json`` under the aku base directory."""

    def __init__(self, path: Path, lock_path: Path | None = None) -> None:
        self.path = path
        self.lock_path = lock_path or path.with_suffix(".lock")

    def initialize(self) -> None:
        """Create the base directory (owner-only) and an empty registry."""
        for directory in (self.path.parent, self.path.parent / "logs"):
            directory.mkdir(mode=_DIR_MODE, parents=True, exist_ok=True)
            _chmod(directory, _DIR_MODE)
        if not self.path.exists():
            with self.locked():
                if not self.path.exists():
                    self.save(Registry(agents=[]))
        _chmod(self.path, _FILE_MODE)

    def load(self) -> Registry:
        try:
            data = self.path.read_bytes()
        except FileNotFoundError:
            return Registry(agents=[])
        return parse_registry(data, source=str(self.path))

    def save(self, registry: Registry) -> None:
        self.path.parent.mkdir(mode=_DIR_MODE, parents=True, exist_ok=True)
        # mkstemp creates the file with mode 0600
        fd, tmp = tempfile.mkstemp(
            prefix=".agents.", suffix=".json.tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(registry.to_json())
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp)
            raise
        _logger.debug("Saved registry with %d agent(s) to %s", len(registry), self.path)

    @contextlib.contextmanager
    def locked(self) -> Iterator[None]:
        with _file_lock(self.lock_path):
            yield


class InMemoryRegistryStore(BaseRegistryStore):
    """Registry kept as an in-memory JSON document.

    Goes through the same encoding as the file store, so corrupt documents
    behave identically.
    """

    def __init__(self, document: str | None = None) -> None:
        self.document = document
        self.saves = 0

    def load(self) -> Registry:
        if self.document is None:
            return Registry(agents=[])
        return parse_registry(self.document, source="in-memory registry")

    def save(self, registry: Registry) -> None:
        self.document = registry.to_json()
        self.saves += 1

    @contextlib.contextmanager
    def locked(self) -> Iterator[None]:
        yield


@contextlib.contextmanager
def _file_lock(path: Path) -> Iterator[None]:
    """Exclusive advisory lock on ``path``. Blocks until acquired."""
    path.parent.mkdir(mode=_DIR_MODE, parents=True, exist_ok=True)
    fd = os.open(path, os.O_RDWR | os.O_CREAT, _FILE_MODE)
    try:
        if os.name == "nt":
            import msvcrt

            msvcrt.locking(fd, msvcrt.LK_LOCK, 1)
            try:
                yield
            finally:
                os.lseek(fd, 0, os.SEEK_SET)
                msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
        else:
            import fcntl

            fcntl.flock(fd, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


def _chmod(path: Path, mode: int) -> None:
    try:
        os.chmod(path, mode)
    except OSError as e:
        _logger.warning("Could not set permissions %o on %s: %s", mode, path, e)
