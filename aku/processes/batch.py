"""Batch spawning — N agents from one name prefix and task template.

Items are independent: a failure for one name (a duplicate, say) is
recorded and the batch carries on. Only a missing agent executable stops
the batch, and it does so before anything is spawned.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from aku.exceptions import AkuError, InvalidCountError
from aku.processes.manager import AgentManager
from aku.processes.prompt import DEFAULT_TASK, substitute_index
from aku.types import AgentRecord

_logger = logging.getLogger(__name__)


def parse_count(value: int | str) -> int:
    """Validate a batch size. Accepts ints and decimal strings."""
    if isinstance(value, bool):
        raise InvalidCountError(f"Invalid count '{value}'. Must be a positive integer.")
    if isinstance(value, int):
        count = value
    else:
        text = str(value).strip()
        if not re.fullmatch(r"[0-9]+", text):
            raise InvalidCountError(f"Invalid count '{value}'. Must be a positive integer.")
        count = int(text)
    if count <= 0:
        raise InvalidCountError(f"Invalid count '{value}'. Must be a positive integer.")
    return count


@dataclass
class BatchItem:
    name: str
    record: AgentRecord | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.record is not None


@dataclass
class BatchResult:
    items: list[BatchItem] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for i in self.items if i.ok)

    @property
    def failed(self) -> int:
        return sum(1 for i in self.items if not i.ok)


class BatchSpawner:
    """Repeats ``AgentManager.spawn`` with templated names and tasks."""

    def __init__(self, manager: AgentManager) -> None:
        self._manager = manager

    def spawn_many(
        self,
        count: int | str,
        prefix: str,
        task_template: str | None = None,
        agent_type: str | None = None,
    ) -> BatchResult:
        """Spawn ``{prefix}-1`` … ``{prefix}-{count}``.

        ``{n}`` and ``{N}`` in the task template become the item's index.
        """
        total = parse_count(count)
        self._manager.agent_command()  # fail fast on a missing executable
        template = DEFAULT_TASK if task_template is None else task_template

        result = BatchResult()
        for index in range(1, total + 1):
            name = f"{prefix}-{index}"
            task = substitute_index(template, index)
            try:
                record = self._manager.spawn(name, task, agent_type)
            except AkuError as e:
                _logger.warning("Batch item '%s' failed: %s", name, e)
                result.items.append(BatchItem(name, error=str(e)))
                continue
            result.items.append(BatchItem(name, record=record))

        _logger.info(
            "Batch '%s': %d spawned, %d failed", prefix, result.succeeded, result.failed
        )
        return result
