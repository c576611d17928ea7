"""Async HTTP client for the Todoist REST API.

Covers the three task-service operations the workflow uses: create a task,
list a project's tasks with a due filter, and create a project during
onboarding. Retries are applied by the caller through the Retry Gate, so
every method simply raises httpx errors on failure.
"""

from __future__ import annotations

from datetime import date

import httpx
import structlog
from pydantic import BaseModel

logger = structlog.get_logger(__name__)

DUE_TODAY_OR_OVERDUE = "today | overdue"


class TrackedTask(BaseModel):
    """A task as returned by the task service."""

    task_id: str
    content: str
    description: str = ""
    due_date: date | None = None
    assignee_id: str | None = None


def _to_task(data: dict) -> TrackedTask:
    due = data.get("due") or {}
    due_date: date | None = None
    if due.get("date"):
        due_date = date.fromisoformat(due["date"][:10])
    return TrackedTask(
        task_id=str(data.get("id", "")),
        content=data.get("content", ""),
        description=data.get("description", "") or "",
        due_date=due_date,
        assignee_id=data.get("assignee_id"),
    )


class TodoistClient:
    """Async client for Todoist REST API.

    Args:
        api_token: Todoist API token.
        base_url: API root (override for tests or API migrations).
    """

    TIMEOUT_MUTATE = 30.0
    TIMEOUT_READ = 10.0

    def __init__(
        self,
        api_token: str,
        base_url: str = "https://api.todoist.com/rest/v2",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        }
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        """Create a new httpx client with specified timeout."""
        return httpx.AsyncClient(
            headers=self._headers,
            timeout=timeout,
            transport=self._transport,
        )

    async def create_task(
        self,
        project_id: str,
        content: str,
        due: str | None = None,
        assignee: str | None = None,
        description: str = "",
    ) -> TrackedTask:
        """Create a task in ``project_id``.

        Args:
            project_id: Task-service project handle.
            content: Task title.
            due: Natural-language or ISO due string, passed through as due_string.
            assignee: Task-service user id.
            description: Free text; carries the idempotency marker.
        """
        payload: dict = {
            "project_id": project_id,
            "content": content,
            "description": description,
        }
        if due:
            payload["due_string"] = due
        if assignee:
            payload["assignee_id"] = assignee

        async with self._client(self.TIMEOUT_MUTATE) as client:
            response = await client.post(f"{self._base_url}/tasks", json=payload)
            response.raise_for_status()
            task = _to_task(response.json())

        logger.info("todoist.task_created", project_id=project_id, task_id=task.task_id)
        return task

    async def list_tasks(
        self,
        project_id: str,
        due_filter: str | None = None,
    ) -> list[TrackedTask]:
        """List active tasks in a project, optionally with a Todoist filter."""
        params: dict[str, str] = {"project_id": project_id}
        if due_filter:
            params["filter"] = due_filter

        async with self._client(self.TIMEOUT_READ) as client:
            response = await client.get(f"{self._base_url}/tasks", params=params)
            response.raise_for_status()
            data = response.json()

        items = data.get("results", []) if isinstance(data, dict) else data
        tasks = [_to_task(item) for item in items]
        logger.debug("todoist.tasks_listed", project_id=project_id, count=len(tasks))
        return tasks

    async def create_project(self, name: str) -> str:
        """Create a project and return its id."""
        async with self._client(self.TIMEOUT_MUTATE) as client:
            response = await client.post(f"{self._base_url}/projects", json={"name": name})
            response.raise_for_status()
            project_id = str(response.json().get("id", ""))

        logger.info("todoist.project_created", project_id=project_id, name=name)
        return project_id
