"""Durable storage for queued offline actions.

Example:
    store = JsonFileActionStore(Path("~/.local/share/debtflow/offline_queue.json"))
    store.upsert(action)
    for action in store.list():
        ...
    store.remove(action.id)
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from ...exceptions import DebtFlowError, PersistenceError, wrap_exception
from ...utils.logging import get_logger
from ..domain.offline import OfflineAction, dump_offline_action, parse_offline_action

logger = get_logger(__name__)


class OfflineActionStore(ABC):
    """Storage contract for the offline queue.

    ``list`` returns actions oldest first, which is the replay order.
    """

    @abstractmethod
    def list(self) -> list[OfflineAction]:
        """All pending actions, oldest first."""

    @abstractmethod
    def upsert(self, action: OfflineAction) -> None:
        """Insert or replace an action by id."""

    @abstractmethod
    def remove(self, action_id: str) -> bool:
        """Delete an action. Returns False if it was not queued."""

    def clear(self) -> int:
        """Remove every action and return how many were dropped."""
        actions = self.list()
        for action in actions:
            self.remove(action.id)
        return len(actions)


class InMemoryActionStore(OfflineActionStore):
    """Process-local queue, used by tests and one-shot sessions."""

    def __init__(self) -> None:
        self._actions: dict[str, OfflineAction] = {}

    def list(self) -> list[OfflineAction]:
        return sorted(self._actions.values(), key=lambda a: a.timestamp)

    def upsert(self, action: OfflineAction) -> None:
        self._actions[action.id] = action.model_copy(deep=True)

    def remove(self, action_id: str) -> bool:
        return self._actions.pop(action_id, None) is not None


class JsonFileActionStore(OfflineActionStore):
    """Queue persisted as one JSON object keyed by action id.

    Writes go to a temporary file that then replaces the queue file, so a
    crash mid-write never leaves a truncated queue behind.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser()
        logger.debug("offline_store_initialized", path=str(self.path))

    def list(self) -> list[OfflineAction]:
        actions: list[OfflineAction] = []
        for action_id, payload in self._read().items():
            try:
                actions.append(parse_offline_action(payload))
            except DebtFlowError as e:
                # Left in the file for manual inspection; `queue clear` drops it
                logger.error("offline_action_unreadable", action_id=action_id, error=str(e))
        return sorted(actions, key=lambda a: a.timestamp)

    def upsert(self, action: OfflineAction) -> None:
        data = self._read()
        data[action.id] = dump_offline_action(action)
        self._write(data)

    def remove(self, action_id: str) -> bool:
        data = self._read()
        if data.pop(action_id, None) is None:
            return False
        self._write(data)
        return True

    def clear(self) -> int:
        count = len(self._read())
        self._write({})
        return count

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise wrap_exception(
                e, "Failed to read offline queue", exception_class=PersistenceError, path=str(self.path)
            )
        if not isinstance(data, dict):
            raise PersistenceError(
                "Offline queue file is not a JSON object", context={"path": str(self.path)}
            )
        return data

    def _write(self, data: dict[str, Any]) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            tmp_path.replace(self.path)
        except OSError as e:
            raise wrap_exception(
                e, "Failed to write offline queue", exception_class=PersistenceError, path=str(self.path)
            )
        logger.debug("offline_queue_written", path=str(self.path), count=len(data))
