"""
One client's view of one project: optimistic edits through the reconciler,
persistence over HTTP, and socket notifications once a change is committed.
"""
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from pmhub.client.api_client import PMHubApiClient, mutation_result, project_result
from pmhub.client.reconciler import ClientReconciler, MutationState, PendingMutation, project_key, task_key
from pmhub.core.config import settings

logger = logging.getLogger(__name__)

Emit = Callable[[Dict[str, Any]], Awaitable[None]]


class ProjectCollaborator:
    def __init__(
        self,
        project_id: str,
        api: PMHubApiClient,
        emit: Emit,
        reconciler: Optional[ClientReconciler] = None,
    ):
        self.project_id = project_id
        self.api = api
        self.emit = emit
        self.reconciler = reconciler or ClientReconciler(timeout=settings.CLIENT_MUTATION_TIMEOUT_SECONDS)

    async def _send(self, kind: str, data: Dict[str, Any]) -> None:
        # committed-but-unbroadcast is tolerated: peers catch up on reload
        try:
            await self.emit({"type": kind, "data": data})
        except Exception as e:
            logger.warning(f"Could not emit {kind}: {e}")

    async def open(self) -> None:
        project = await self.api.get_project(self.project_id)
        self.reconciler.load_project(project)
        await self._send("join-room", {"projectId": self.project_id})

    async def close(self) -> None:
        await self._send("leave-room", {"projectId": self.project_id})

    @property
    def project(self) -> Optional[Dict[str, Any]]:
        return self.reconciler.get(project_key(self.project_id))

    def task(self, task_id: str) -> Optional[Dict[str, Any]]:
        return self.reconciler.get(task_key(task_id))

    async def update_project(self, changes: Dict[str, Any]) -> PendingMutation:
        # progress is derived on the server, never edited locally
        changes = {k: v for k, v in changes.items() if k != "progress"}

        async def persist():
            return project_result(await self.api.update_project(self.project_id, changes))

        mutation = await self.reconciler.mutate(project_key(self.project_id), changes, persist)
        if mutation.state is MutationState.CONFIRMED:
            await self._send("project-mutated", {"projectId": self.project_id, "project": self.project})
        return mutation

    async def create_task(self, fields: Dict[str, Any]) -> PendingMutation:
        local_key = task_key(f"local-{uuid.uuid4().hex}")

        async def persist():
            return mutation_result(await self.api.create_task(self.project_id, fields))

        mutation = await self.reconciler.mutate(local_key, {**fields, "projectId": self.project_id}, persist)
        if mutation.state is MutationState.CONFIRMED:
            created = self.reconciler.get(mutation.resolved_key)
            if created:
                await self._send("task-created", {"projectId": self.project_id, "task": created})
        return mutation

    async def update_task(self, task_id: str, changes: Dict[str, Any]) -> PendingMutation:
        async def persist():
            return mutation_result(await self.api.update_task(task_id, changes))

        mutation = await self.reconciler.mutate(task_key(task_id), changes, persist)
        if mutation.state is MutationState.CONFIRMED:
            await self._send("task-mutated", {"projectId": self.project_id, "task": self.task(task_id)})
        return mutation

    async def delete_task(self, task_id: str) -> PendingMutation:
        async def persist():
            return mutation_result(await self.api.delete_task(task_id))

        mutation = await self.reconciler.mutate(task_key(task_id), None, persist)
        if mutation.state is MutationState.CONFIRMED:
            await self._send("task-deleted", {"projectId": self.project_id, "taskId": task_id})
        return mutation

    async def viewing(self, task_id: str) -> None:
        await self._send("task-viewing", {"projectId": self.project_id, "taskId": task_id})

    async def typing(self, task_id: str) -> None:
        await self._send("comment-typing", {"projectId": self.project_id, "taskId": task_id})

    async def add_comment(self, task_id: str, content: str) -> Dict[str, Any]:
        comment = await self.api.add_comment(task_id, content)
        await self._send("comment-added", {"projectId": self.project_id, "taskId": task_id, "comment": comment})
        return comment

    def handle_frame(self, frame: Dict[str, Any]) -> str:
        """Feed one inbound socket frame to the reconciler."""
        data = frame.get("data") or {}
        if frame.get("type") == "connected" and data.get("connectionId"):
            # sent as X-Connection-Id so the server leaves this socket out of its own broadcasts
            self.api.connection_id = data["connectionId"]
            return "connected"
        return self.reconciler.receive_broadcast(frame.get("type"), data)
