"""Tests for the registry store (file-backed and in-memory)."""

import json
import os
import stat

import pytest

from aku.exceptions import CorruptRegistryError
from aku.processes.registry import InMemoryRegistryStore, RegistryStore
from aku.types import AgentRecord, AgentStatus, Registry

posix_only = pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")


def _record(name: str, pid: int = 100) -> AgentRecord:
    return AgentRecord(
        name=name, process_id=pid, log_path=f"{name}.log", prompt_path=f"{name}.prompt.md"
    )


# ── File store ───────────────────────────────────────────────────

def test_missing_document_loads_empty(tmp_path):
    store = RegistryStore(tmp_path / "aku" / "agents.json")
    reg = store.load()
    assert len(reg) == 0
    assert not store.path.exists()


def test_save_and_load_preserves_order(tmp_path):
    store = RegistryStore(tmp_path / "agents.json")
    reg = Registry(agents=[])
    for i, name in enumerate(["zeta", "alpha", "mid"]):
        reg.add(_record(name, pid=10 + i))
    store.save(reg)

    loaded = store.load()
    assert [a.name for a in loaded.agents] == ["zeta", "alpha", "mid"]
    assert [a.process_id for a in loaded.agents] == [10, 11, 12]


def test_document_format(tmp_path):
    store = RegistryStore(tmp_path / "agents.json")
    reg = Registry(agents=[])
    reg.add(_record("frontend", pid=321))
    store.save(reg)

    data = json.loads(store.path.read_text())
    assert set(data) == {"agents"}
    entry = data["agents"][0]
    assert entry["pid"] == 321
    assert set(entry) >= {"name", "pid", "log", "prompt", "status", "started"}


def test_save_leaves_no_temp_files(tmp_path):
    store = RegistryStore(tmp_path / "agents.json")
    store.save(Registry(agents=[]))
    store.save(Registry(agents=[]))
    assert sorted(p.name for p in tmp_path.iterdir()) == ["agents.json"]


@pytest.mark.parametrize("content", [
    "{not json",
    "",
    '{"agents": "nope"}',
    '{"agents": [{"name": "x"}]}',
    "{}",
    '{"agent": []}',
    '{"agents": [], "extra": 1}',
])
def test_corrupt_document_raises_and_is_left_untouched(tmp_path, content):
    path = tmp_path / "agents.json"
    path.write_text(content)
    store = RegistryStore(path)

    with pytest.raises(CorruptRegistryError):
        store.load()
    assert path.read_text() == content


@pytest.mark.parametrize("content", [b"\xff", b'{"agents": [\xff]}', b'{"agents": [], "x": "\xff"}'])
def test_invalid_utf8_document_is_corrupt(tmp_path, content):
    path = tmp_path / "agents.json"
    path.write_bytes(content)

    with pytest.raises(CorruptRegistryError):
        RegistryStore(path).load()
    assert path.read_bytes() == content


def test_duplicate_names_are_corrupt(tmp_path):
    entry = {"name": "x", "pid": 1, "log": "l", "prompt": "p",
             "status": "running", "started": "2025-02-14T10:00:00Z"}
    path = tmp_path / "agents.json"
    path.write_text(json.dumps({"agents": [entry, dict(entry, pid=2)]}))

    with pytest.raises(CorruptRegistryError):
        RegistryStore(path).load()


def test_initialize_creates_layout(tmp_path):
    store = RegistryStore(tmp_path / "aku" / "agents.json")
    store.initialize()

    assert (tmp_path / "aku" / "logs").is_dir()
    assert json.loads(store.path.read_text()) == {"agents": []}


def test_initialize_keeps_existing_registry(tmp_path):
    store = RegistryStore(tmp_path / "agents.json")
    reg = Registry(agents=[])
    reg.add(_record("keep"))
    store.save(reg)

    store.initialize()
    assert store.load().get("keep") is not None


@posix_only
def test_initialize_sets_owner_only_permissions(tmp_path):
    base = tmp_path / "aku"
    store = RegistryStore(base / "agents.json")
    store.initialize()

    assert stat.S_IMODE(base.stat().st_mode) == 0o700
    assert stat.S_IMODE((base / "logs").stat().st_mode) == 0o700
    assert stat.S_IMODE(store.path.stat().st_mode) == 0o600


@posix_only
def test_saved_document_is_owner_only(tmp_path):
    store = RegistryStore(tmp_path / "agents.json")
    store.save(Registry(agents=[]))
    assert stat.S_IMODE(store.path.stat().st_mode) == 0o600


def test_transaction_saves_on_success(tmp_path):
    store = RegistryStore(tmp_path / "agents.json")
    with store.transaction() as reg:
        reg.add(_record("a"))
    assert store.load().get("a") is not None


def test_transaction_discards_on_error(tmp_path):
    store = RegistryStore(tmp_path / "agents.json")
    store.save(Registry(agents=[]))
    with pytest.raises(RuntimeError):
        with store.transaction() as reg:
            reg.add(_record("a"))
            raise RuntimeError("boom")
    assert store.load().get("a") is None


def test_lock_file_is_separate_from_document(tmp_path):
    store = RegistryStore(tmp_path / "agents.json")
    with store.locked():
        assert store.lock_path.exists()
        assert store.lock_path != store.path
    assert store.lock_path.name == "agents.lock"


# ── In-memory store ──────────────────────────────────────────────

def test_memory_store_starts_empty():
    store = InMemoryRegistryStore()
    assert len(store.load()) == 0


def test_memory_store_roundtrip_is_a_fresh_copy():
    store = InMemoryRegistryStore()
    reg = Registry(agents=[])
    reg.add(_record("a"))
    store.save(reg)

    reg.agents[0].status = AgentStatus.STOPPED  # mutating after save has no effect
    assert store.load().get("a").status == AgentStatus.RUNNING
    assert store.saves == 1


def test_memory_store_corrupt_document():
    store = InMemoryRegistryStore(document="[]")
    with pytest.raises(CorruptRegistryError):
        store.load()
