"""CLI runtime context — wires settings, registry store and process backend."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

from aku.config import AkuSettings, settings as default_settings
from aku.processes.backend import ProcessBackend, default_backend
from aku.processes.batch import BatchSpawner
from aku.processes.manager import AgentManager
from aku.processes.registry import RegistryStore


class AkuContext:
    """Singleton runtime context that holds the manager and its collaborators."""

    _instance: AkuContext | None = None

    def __init__(
        self,
        settings: AkuSettings | None = None,
        backend: ProcessBackend | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.store = RegistryStore(self.settings.registry_path, self.settings.lock_path)
        self.backend = backend or default_backend()
        self.manager = AgentManager(self.store, self.backend, self.settings)
        self.batch = BatchSpawner(self.manager)
        self._store_initialized = False

    def ensure_store(self) -> AgentManager:
        """Create the base directory and registry on first use."""
        if not self._store_initialized:
            self.store.initialize()
            self._store_initialized = True
        return self.manager

    @classmethod
    def get(cls) -> AkuContext:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls, instance: AkuContext | None = None) -> None:
        cls._instance = instance


def configure_logging(level: str) -> None:
    """Route library logging to stderr through rich."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
