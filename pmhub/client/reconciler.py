"""
Client-side optimistic state.

Each local mutation moves through ``Applied -> Confirmed | RolledBack``:

- applied to the local view immediately, after a deep-copy snapshot
- confirmed with the server's authoritative fields (derived values such as
  completion and progress always come from the server)
- rolled back to the snapshot when the persistence call fails

A broadcast for an entity that still has an Applied mutation is queued and
replayed once that entity has nothing in flight, so the later confirmation
cannot clobber it.
"""
import asyncio
import copy
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

Entity = Dict[str, Any]


class MutationState(str, Enum):
    APPLIED = "applied"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled-back"


@dataclass
class ServerResult:
    """
    Authoritative outcome of a persistence call.

    ``entity`` is None for deletions. ``related`` carries fields for other
    entities the server recomputed (e.g. ``{"project:p1": {"progress": 40}}``).
    ``entity_key`` moves the entity when the server assigned its id.
    """

    entity: Optional[Entity] = None
    related: Dict[str, Entity] = field(default_factory=dict)
    entity_key: Optional[str] = None


@dataclass
class PendingMutation:
    entity_key: str
    changes: Optional[Entity]
    snapshot: Optional[Entity]
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: MutationState = MutationState.APPLIED
    error: Optional[BaseException] = None
    # key the entity ended up under once confirmed (server-assigned ids)
    resolved_key: Optional[str] = None


def task_key(task_id: Any) -> str:
    return f"task:{task_id}"


def project_key(project_id: Any) -> str:
    return f"project:{project_id}"


def _apply(state: Optional[Entity], changes: Optional[Entity]) -> Optional[Entity]:
    if changes is None:
        return None
    merged = copy.deepcopy(state) if state is not None else {}
    merged.update(copy.deepcopy(changes))
    return merged


Persist = Callable[[], Awaitable[Union[ServerResult, Entity, None]]]
ErrorListener = Callable[[PendingMutation, BaseException], None]


class ClientReconciler:
    def __init__(self, on_error: Optional[ErrorListener] = None, timeout: Optional[float] = None):
        self.view: Dict[str, Entity] = {}
        self.on_error = on_error
        self.timeout = timeout or None
        self._pending: Dict[str, List[PendingMutation]] = {}
        self._queued: Dict[str, List[Tuple[str, Dict[str, Any]]]] = {}

    # =========================================================
    # Local view
    # =========================================================

    def load_project(self, project: Entity) -> None:
        """Seed the view from a full project payload (as returned by GET /projects/{id})."""
        tasks = project.get("tasks") or []
        self.view[project_key(project["id"])] = {k: v for k, v in project.items() if k != "tasks"}
        for task in tasks:
            self.view[task_key(task["id"])] = copy.deepcopy(task)

    def get(self, entity_key: str) -> Optional[Entity]:
        return self.view.get(entity_key)

    def has_pending(self, entity_key: str) -> bool:
        return bool(self._pending.get(entity_key))

    def _set(self, entity_key: str, state: Optional[Entity]) -> None:
        if state is None:
            self.view.pop(entity_key, None)
        else:
            self.view[entity_key] = state

    # =========================================================
    # State machine
    # =========================================================

    def apply(self, entity_key: str, changes: Optional[Entity]) -> PendingMutation:
        """Applied: snapshot, then change the view. ``changes=None`` deletes."""
        current = self.view.get(entity_key)
        mutation = PendingMutation(
            entity_key=entity_key,
            changes=copy.deepcopy(changes),
            snapshot=copy.deepcopy(current),
        )
        self._pending.setdefault(entity_key, []).append(mutation)
        self._set(entity_key, _apply(current, changes))
        return mutation

    def confirm(self, mutation: PendingMutation, result: Union[ServerResult, Entity, None]) -> None:
        if mutation.state is not MutationState.APPLIED:
            return
        if not isinstance(result, ServerResult):
            result = ServerResult(entity=result)

        mutation.state = MutationState.CONFIRMED
        others = self._resolve(mutation)
        key = mutation.entity_key

        if result.entity_key and result.entity_key != key and not others:
            self.view.pop(key, None)
            key = result.entity_key
        self._rebuild(key, result.entity, others)
        mutation.resolved_key = key

        for related_key, fields in result.related.items():
            if related_key in self.view:
                self.view[related_key].update(copy.deepcopy(fields))

        self._replay(mutation.entity_key)
        if key != mutation.entity_key:
            self._replay(key)

    def rollback(self, mutation: PendingMutation, error: BaseException) -> None:
        if mutation.state is not MutationState.APPLIED:
            return
        mutation.state = MutationState.ROLLED_BACK
        mutation.error = error

        pending = self._pending.get(mutation.entity_key, [])
        later = pending[pending.index(mutation) + 1:]
        self._resolve(mutation)
        self._rebuild(mutation.entity_key, mutation.snapshot, later)

        logger.warning(f"Rolled back {mutation.entity_key}: {error}")
        if self.on_error:
            self.on_error(mutation, error)
        self._replay(mutation.entity_key)

    async def mutate(self, entity_key: str, changes: Optional[Entity], persist: Persist) -> PendingMutation:
        """
        Apply optimistically, run the persistence call, then confirm or roll back.

        A cancelled call is rolled back before the cancellation propagates.
        """
        mutation = self.apply(entity_key, changes)
        try:
            if self.timeout:
                result = await asyncio.wait_for(persist(), self.timeout)
            else:
                result = await persist()
        except asyncio.CancelledError as e:
            self.rollback(mutation, e)
            raise
        except Exception as e:
            self.rollback(mutation, e)
        else:
            self.confirm(mutation, result)
        return mutation

    def _resolve(self, mutation: PendingMutation) -> List[PendingMutation]:
        pending = self._pending.get(mutation.entity_key, [])
        if mutation in pending:
            pending.remove(mutation)
        if not pending:
            self._pending.pop(mutation.entity_key, None)
        return list(pending)

    def _rebuild(self, entity_key: str, base: Optional[Entity], still_pending: List[PendingMutation]) -> None:
        """Re-apply in-flight mutations on top of ``base``, refreshing their snapshots."""
        state = copy.deepcopy(base)
        for pending in still_pending:
            pending.snapshot = copy.deepcopy(state)
            state = _apply(state, pending.changes)
        self._set(entity_key, state)

    # =========================================================
    # Broadcasts
    # =========================================================

    def receive_broadcast(self, kind: str, data: Dict[str, Any]) -> str:
        """
        Merge a server broadcast. Returns "merged", "queued" or "ignored".
        """
        target = self._target(kind, data)
        if target is None:
            return "ignored"
        entity_key, _ = target
        if self.has_pending(entity_key):
            self._queued.setdefault(entity_key, []).append((kind, copy.deepcopy(data)))
            return "queued"
        self._merge(target)
        return "merged"

    def _target(self, kind: str, data: Dict[str, Any]) -> Optional[Tuple[str, Optional[Entity]]]:
        if not isinstance(data, dict):
            return None
        if kind in ("task-created", "task-updated"):
            task = data.get("task") or {}
            if "id" not in task:
                return None
            return task_key(task["id"]), task
        if kind == "task-deleted" and data.get("taskId") is not None:
            return task_key(data["taskId"]), None
        if kind == "project-updated":
            project = data.get("project") or {}
            if "id" not in project:
                return None
            return project_key(project["id"]), project
        return None

    def _merge(self, target: Tuple[str, Optional[Entity]]) -> None:
        entity_key, fields = target
        if fields is None:
            self.view.pop(entity_key, None)
        else:
            self._set(entity_key, _apply(self.view.get(entity_key), fields))

    def _replay(self, entity_key: str) -> None:
        if self.has_pending(entity_key):
            return
        for kind, data in self._queued.pop(entity_key, []):
            target = self._target(kind, data)
            if target is not None:
                self._merge(target)
