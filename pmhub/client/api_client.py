import logging
from typing import Any, Dict, Optional

import httpx

from pmhub.core.config import settings
from pmhub.client.reconciler import ServerResult, project_key, task_key

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status_code: int, code: Optional[str], message: str):
        self.status_code = status_code
        self.code = code
        self.message = message
        super().__init__(f"[{status_code}] {code}: {message}")


def mutation_result(data: Dict[str, Any]) -> ServerResult:
    """Turn a TaskMutationResponse payload into what the reconciler expects."""
    related = {}
    if data.get("projectProgress") is not None:
        related[project_key(data["projectId"])] = {"progress": data["projectProgress"]}
    task = data.get("task")
    return ServerResult(
        entity=task,
        related=related,
        entity_key=task_key(task["id"]) if task else None,
    )


def project_result(data: Dict[str, Any]) -> ServerResult:
    """Turn a ProjectResponse payload into what the reconciler expects (tasks live under their own keys)."""
    project = {k: v for k, v in data.items() if k != "tasks"}
    return ServerResult(entity=project, entity_key=project_key(project["id"]))


class PMHubApiClient:
    """
    HTTP persistence calls. Raises ApiError on any failure so callers can
    roll back; returns the envelope's ``data`` on success.
    """

    def __init__(
        self,
        token: str,
        base_url: Optional[str] = None,
        connection_id: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or settings.API_BASE_URL
        self.token = token
        self.connection_id = connection_id
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self.token}"}
        if self.connection_id:
            headers["X-Connection-Id"] = self.connection_id
        return headers

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.request(method, path, json=json, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise ApiError(0, "NETWORK_ERROR", str(e)) from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400 or not body.get("success", False):
            logger.warning(f"{method} {path} -> {response.status_code} {body.get('code')}")
            raise ApiError(
                response.status_code,
                body.get("code"),
                body.get("message") or response.reason_phrase,
            )
        return body.get("data")

    async def get_project(self, project_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/projects/{project_id}")

    async def update_project(self, project_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PUT", f"/projects/{project_id}", json=changes)

    async def create_task(self, project_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", f"/projects/{project_id}/tasks", json=fields)

    async def update_task(self, task_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PUT", f"/tasks/{task_id}", json=changes)

    async def delete_task(self, task_id: str) -> Dict[str, Any]:
        return await self._request("DELETE", f"/tasks/{task_id}")

    async def add_comment(self, task_id: str, content: str) -> Dict[str, Any]:
        return await self._request("POST", f"/tasks/{task_id}/comments", json={"content": content})
