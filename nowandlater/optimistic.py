"""Optimistic local updates reconciled against the backend's answer.

Every mutation snapshots the entity, applies the proposed value to
``LocalState`` right away, then runs the remote call. Success adopts the
server's value; failure restores the snapshot exactly and records a
user-visible error.

Writes to one entity are dispatched in issue order through a per-entity
lock. Each mutation carries a generation number and only the newest one
for an entity may touch local state, so overlapping edits resolve as
last-dispatched-wins: a stale response never overwrites a newer intent,
and a failed older write is folded into the baseline of the newer one.
"""
from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from contextlib import AsyncExitStack
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import AccessLayerError, PendingCreationError, ValidationFailure
from .models import AppData, Area, Project, Task
from .transport.health import Transport

logger = logging.getLogger(__name__)

TEMP_PREFIX = "temp-"
ENTITY_KINDS = ("area", "project", "task")

Key = Tuple[str, str]


def new_temp_id(kind: str) -> str:
    return f"{TEMP_PREFIX}{kind}-{uuid.uuid4().hex[:12]}"


def is_temp_id(entity_id: str) -> bool:
    return entity_id.startswith(TEMP_PREFIX)


class OperationStatus(str, Enum):
    APPLIED = "applied"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(slots=True)
class PendingOptimisticOperation:
    entity_id: str
    entity_kind: str
    previous_snapshot: Any
    proposed_snapshot: Any
    status: OperationStatus = OperationStatus.APPLIED
    generation: int = 0
    superseded_by: Optional["PendingOptimisticOperation"] = None

    @property
    def superseded(self) -> bool:
        return self.superseded_by is not None


class LocalState:
    """What the UI currently shows: areas, projects and tasks keyed by id.

    Also records the last user-visible error and whether the last backend
    answer came from degraded substitute data.
    """

    def __init__(self) -> None:
        self._entities: Dict[str, Dict[str, Any]] = {kind: {} for kind in ENTITY_KINDS}
        self.error: Optional[str] = None
        self.degraded = False
        self.served_by: Optional[Transport] = None

    def load(self, data: AppData) -> None:
        self._entities["area"] = {a.id: a for a in data.areas}
        self._entities["project"] = {p.id: p for p in data.projects}
        self._entities["task"] = {t.id: t for t in data.tasks}

    def get(self, kind: str, entity_id: str) -> Any:
        return self._bucket(kind).get(entity_id)

    def all(self, kind: str) -> List[Any]:
        items = list(self._bucket(kind).values())
        if kind == "task":
            items.sort(key=lambda task: task.sort_order)
        return items

    @property
    def areas(self) -> List[Area]:
        return self.all("area")

    @property
    def projects(self) -> List[Project]:
        return self.all("project")

    @property
    def tasks(self) -> List[Task]:
        return self.all("task")

    def put(self, kind: str, entity: Any) -> None:
        self._bucket(kind)[entity.id] = entity

    def remove(self, kind: str, entity_id: str) -> None:
        self._bucket(kind).pop(entity_id, None)

    def replace_id(self, kind: str, old_id: str, entity: Any) -> None:
        bucket = self._bucket(kind)
        bucket.pop(old_id, None)
        bucket[entity.id] = entity

    def snapshot(self, kind: str, entity_id: str) -> Any:
        return copy.deepcopy(self.get(kind, entity_id))

    def restore(self, kind: str, entity_id: str, snapshot: Any) -> None:
        if snapshot is None:
            self.remove(kind, entity_id)
        else:
            self.put(kind, copy.deepcopy(snapshot))

    def set_error(self, message: Optional[str]) -> None:
        self.error = message

    def clear_error(self) -> None:
        self.error = None

    def on_invocation(self, operation: str, served_by: Transport) -> None:
        self.served_by = served_by
        self.degraded = served_by is Transport.DEGRADED

    def _bucket(self, kind: str) -> Dict[str, Any]:
        try:
            return self._entities[kind]
        except KeyError as exc:
            raise ValidationFailure(f"Unknown entity kind {kind!r}") from exc


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, AccessLayerError):
        return str(exc)
    if isinstance(exc, asyncio.CancelledError):
        return "Request cancelled"
    return f"Unexpected error: {exc}"


class OptimisticCoordinator:
    """Applies UI mutations immediately and reconciles them with the backend."""

    def __init__(self, state: Optional[LocalState] = None) -> None:
        self.state = state or LocalState()
        self._locks: Dict[Key, asyncio.Lock] = {}
        self._generations: Dict[Key, int] = {}
        self._pending: Dict[Key, PendingOptimisticOperation] = {}
        self._history: Dict[Key, PendingOptimisticOperation] = {}
        self._creations: Dict[Key, "asyncio.Future[str]"] = {}
        self._resolved_ids: Dict[Key, str] = {}

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------
    def pending(self, kind: str, entity_id: str) -> Optional[PendingOptimisticOperation]:
        return self._pending.get((kind, entity_id))

    def last_operation(self, kind: str, entity_id: str) -> Optional[PendingOptimisticOperation]:
        key = (kind, entity_id)
        return self._pending.get(key) or self._history.get(key)

    def is_creating(self, kind: str, entity_id: str) -> bool:
        return (kind, entity_id) in self._creations

    def resolved_id(self, kind: str, entity_id: str) -> Optional[str]:
        return self._resolved_ids.get((kind, entity_id))

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    async def create(
        self,
        kind: str,
        provisional: Any,
        call: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Show ``provisional`` under its temporary id until the backend assigns one."""
        temp_id = provisional.id
        if not is_temp_id(temp_id):
            raise ValidationFailure(f"Provisional {kind} id must start with {TEMP_PREFIX!r}")
        key = (kind, temp_id)
        future: "asyncio.Future[str]" = asyncio.get_running_loop().create_future()
        self._creations[key] = future
        self.state.put(kind, provisional)
        try:
            created = await call()
        except BaseException as exc:
            self.state.remove(kind, temp_id)
            self.state.set_error(_error_message(exc))
            future.set_exception(
                ValidationFailure(f"{kind.capitalize()} could not be created: {_error_message(exc)}")
            )
            future.exception()
            logger.warning("Rolled back provisional %s %s: %s", kind, temp_id, exc)
            raise
        finally:
            self._creations.pop(key, None)
        self.state.replace_id(kind, temp_id, created)
        self._resolved_ids[key] = created.id
        future.set_result(created.id)
        logger.debug("Provisional %s %s is now %s", kind, temp_id, created.id)
        return created

    async def _resolve(self, kind: str, entity_id: str, wait: bool) -> str:
        if not is_temp_id(entity_id):
            return entity_id
        key = (kind, entity_id)
        if key in self._resolved_ids:
            return self._resolved_ids[key]
        future = self._creations.get(key)
        if future is None:
            raise ValidationFailure(f"{kind.capitalize()} {entity_id} was never created")
        if not wait:
            raise PendingCreationError(kind, entity_id)
        return await asyncio.shield(future)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    async def update(
        self,
        kind: str,
        entity_id: str,
        proposed: Any,
        call: Callable[[str], Awaitable[Any]],
        *,
        wait_for_creation: bool = False,
    ) -> Any:
        """Apply ``proposed`` now and run ``call(real_id)``; adopt or roll back afterwards.

        ``proposed`` of ``None`` removes the entity. Operations on an entity
        whose creation is still in flight fail with ``PendingCreationError``
        unless ``wait_for_creation`` defers them until the id is known.
        """
        real_id = await self._resolve(kind, entity_id, wait_for_creation)
        if proposed is not None and getattr(proposed, "id", real_id) != real_id:
            proposed = replace(proposed, id=real_id)

        async def run(ids: Sequence[str]) -> Any:
            return await call(ids[0])

        return await self._apply(kind, {real_id: proposed}, run, adopt=True)

    async def delete(
        self,
        kind: str,
        entity_id: str,
        call: Callable[[str], Awaitable[Any]],
        *,
        wait_for_creation: bool = False,
    ) -> Any:
        return await self.update(kind, entity_id, None, call, wait_for_creation=wait_for_creation)

    async def reorder(
        self,
        ordered_ids: Sequence[str],
        call: Callable[[List[str]], Awaitable[Any]],
        *,
        kind: str = "task",
        wait_for_creation: bool = False,
    ) -> Any:
        """Give ``ordered_ids`` sort orders 1..n and persist the order as one write."""
        real_ids = [await self._resolve(kind, i, wait_for_creation) for i in ordered_ids]
        proposals: Dict[str, Any] = {}
        for position, entity_id in enumerate(real_ids, start=1):
            current = self.state.get(kind, entity_id)
            if current is None:
                raise ValidationFailure(f"Cannot reorder unknown {kind} {entity_id}")
            proposals[entity_id] = replace(current, sort_order=position)

        async def run(ids: Sequence[str]) -> Any:
            return await call(list(real_ids))

        return await self._apply(kind, proposals, run, adopt=False)

    async def _apply(
        self,
        kind: str,
        proposals: Mapping[str, Any],
        call: Callable[[Sequence[str]], Awaitable[Any]],
        *,
        adopt: bool,
    ) -> Any:
        keys = [(kind, entity_id) for entity_id in proposals]
        operations = {key: self._begin(key, proposals[key[1]]) for key in keys}

        async with AsyncExitStack() as stack:
            for key in sorted(keys):
                await stack.enter_async_context(self._lock(key))
            try:
                result = await call([key[1] for key in keys])
            except BaseException as exc:
                for key, operation in operations.items():
                    self._roll_back(key, operation)
                self.state.set_error(_error_message(exc))
                logger.warning("Rolled back %s %s: %s", kind, ", ".join(k[1] for k in keys), exc)
                raise

        for key, operation in operations.items():
            self._commit(key, operation, result if adopt else None)
        return result

    def _lock(self, key: Key) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def _begin(self, key: Key, proposed: Any) -> PendingOptimisticOperation:
        kind, entity_id = key
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation
        operation = PendingOptimisticOperation(
            entity_id=entity_id,
            entity_kind=kind,
            previous_snapshot=self.state.snapshot(kind, entity_id),
            proposed_snapshot=copy.deepcopy(proposed),
            generation=generation,
        )
        earlier = self._pending.get(key)
        if earlier is not None:
            earlier.superseded_by = operation
        self._pending[key] = operation
        self.state.restore(kind, entity_id, proposed)
        return operation

    def _commit(self, key: Key, operation: PendingOptimisticOperation, server_value: Any) -> None:
        kind, entity_id = key
        operation.status = OperationStatus.COMMITTED
        confirmed = operation.proposed_snapshot
        if server_value is not None and getattr(server_value, "id", None) == entity_id:
            confirmed = copy.deepcopy(server_value)
        operation.previous_snapshot = None
        newer = operation.superseded_by
        if newer is not None:
            # The newer write now stands on top of what the server accepted.
            newer.previous_snapshot = copy.deepcopy(confirmed)
            return
        if confirmed is not None:
            self.state.put(kind, confirmed)
        self._retire(key, operation)

    def _roll_back(self, key: Key, operation: PendingOptimisticOperation) -> None:
        kind, entity_id = key
        operation.status = OperationStatus.ROLLED_BACK
        newer = operation.superseded_by
        if newer is not None:
            newer.previous_snapshot = operation.previous_snapshot
            return
        self.state.restore(kind, entity_id, operation.previous_snapshot)
        self._retire(key, operation)

    def _retire(self, key: Key, operation: PendingOptimisticOperation) -> None:
        if self._pending.get(key) is operation:
            del self._pending[key]
        self._history[key] = operation

    def forget(self, keys: Iterable[Key]) -> None:
        for key in keys:
            self._history.pop(key, None)
            self._resolved_ids.pop(key, None)
