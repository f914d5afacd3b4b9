"""
Workflow HTTP client — consumer side of the stage review API.

All outbound calls from scripts, CLIs or other services that drive the
stage / checklist / deliverable workflow go through this class.

  - Explicit session: ``login()`` builds an ``AuthSession`` held by the
    client instance; ``logout()`` clears it. No module-level state.
  - Local gates: the same rules the service enforces (description length,
    attachment MIME class, executor / team member, source status) run
    before a request is sent, so an invalid action never reaches the wire.
  - Server rejections surface as the same exception types as local ones
    (403 → AuthorizationError, 409 → TransitionError, 422 → ValidationError,
    404 → NotFoundError); anything else becomes ``TransportError``.
  - No retry. Callers decide whether to offer the action again.

Testability: pass a mock ``session`` to WorkflowClient() in tests instead
of letting it create a real requests.Session internally.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import requests

from app.core.exceptions import AuthorizationError, NotFoundError, TransitionError, ValidationError
from app.services.capability_resolver import (
    ANONYMOUS,
    CanonicalRole,
    first_allowed_capability,
    has_capability,
    normalize_role,
)
from app.services.workflow_rules import (
    check_deliverable_gate,
    check_may_act,
    check_objective_gate,
    validate_description,
)
from app.utils.attachments import validate_documents, validate_images, validate_single_image

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30
_API_PREFIX = "/api/v1"


class TransportError(Exception):
    """Network failure or unexpected backend answer.

    ``message`` is safe to show to the user; ``status_code`` is None for
    network-level failures.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass
class AuthSession:
    """Authenticated session: the user payload, its token and normalized role."""

    user: dict
    token: str
    role: CanonicalRole = field(default=ANONYMOUS)

    @property
    def user_id(self) -> int | None:
        return self.user.get("id")

    @property
    def landing(self) -> str:
        return first_allowed_capability(self.role)

    def can_open(self, path: str) -> bool:
        return has_capability(self.role, path)


def _stage_actors(stage: dict) -> tuple[int | None, list[int]]:
    executor = stage.get("executor") or {}
    members = stage.get("members") or []
    return executor.get("id"), [m.get("id") for m in members if isinstance(m, dict)]


def _item_status(stage: dict, index: int) -> str:
    for item in stage.get("checklist") or []:
        if item.get("index") == index:
            return item.get("status") or "PENDING"
    raise ValidationError(f"Checklist index {index} out of range", details={"index": index})


class WorkflowClient:
    """REST client for the stage review workflow.

    Usage:
        client = WorkflowClient("https://review.example.com")
        client.login("ana@example.com", "secret")
        stage = client.get_stage(7)
        client.submit_objective(stage, 0, "Foundation poured", images=[...])
    """

    def __init__(
        self,
        base_url: str,
        session: requests.Session | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session: requests.Session | None = session
        self.auth: AuthSession | None = None

    # ── HTTP session ─────────────────────────────────────────────────────────

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _url(self, path: str) -> str:
        return f"{self.base_url}{_API_PREFIX}{path}"

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.auth is not None:
            headers["Authorization"] = f"Bearer {self.auth.token}"
        return headers

    def _raise_for(self, resp: requests.Response) -> None:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        message = body.get("error") if isinstance(body, dict) else None
        message = message or f"Request failed with HTTP {resp.status_code}"
        details = body.get("details") if isinstance(body, dict) else None

        if resp.status_code == 403:
            raise AuthorizationError(message)
        if resp.status_code == 404:
            raise NotFoundError(resource=message.removesuffix(" not found"))
        if resp.status_code == 409:
            current = (details or {}).get("current_status")
            raise TransitionError("resource", "request", current, message)
        if resp.status_code == 422:
            raise ValidationError(message, details=details)
        if resp.status_code == 401:
            self.auth = None
            raise TransportError("Session expired, please log in again", resp.status_code)
        raise TransportError(message, resp.status_code)

    def _request(self, method: str, path: str, *, json_body: Any = None, params: dict | None = None):
        kwargs: dict[str, Any] = {"headers": self._headers(), "timeout": self.timeout}
        if json_body is not None:
            kwargs["json"] = json_body
        if params:
            kwargs["params"] = params
        url = self._url(path)
        try:
            resp = self.session.request(method, url, **kwargs)
        except requests.Timeout:
            logger.warning("Workflow request timed out %s %s", method, url)
            raise TransportError(f"Request timed out after {self.timeout}s")
        except requests.RequestException as exc:
            logger.warning("Workflow network error %s %s: %s", method, url, exc)
            raise TransportError("Could not reach the server")

        if not resp.ok:
            logger.info("Workflow request rejected %s %s status=%d", method, url, resp.status_code)
            self._raise_for(resp)
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            raise TransportError("Server returned an invalid response", resp.status_code)

    def _require_auth(self) -> AuthSession:
        if self.auth is None:
            raise AuthorizationError("Not logged in")
        return self.auth

    # ── Session lifecycle ────────────────────────────────────────────────────

    def login(self, email: str, password: str) -> AuthSession:
        """Authenticate and hold the resulting session on this client."""
        self.auth = None
        data = self._request("POST", "/auth/login", json_body={"email": email, "password": password})
        user = data.get("user") or {}
        self.auth = AuthSession(user=user, token=data.get("token", ""), role=normalize_role(user.get("role")))
        logger.info("Logged in user=%s role=%s", self.auth.user_id, self.auth.role.name)
        return self.auth

    def logout(self) -> None:
        """Revoke the token server-side (best effort) and drop the session."""
        if self.auth is None:
            return
        try:
            self._request("POST", "/auth/logout")
        except TransportError as exc:
            logger.warning("Logout request failed: %s", exc.message)
        finally:
            self.auth = None

    # ── Reads ────────────────────────────────────────────────────────────────

    def my_tasks(self, status: str | None = None, project_id: int | None = None) -> dict:
        self._require_auth()
        params = {k: v for k, v in (("status", status), ("project_id", project_id)) if v}
        return self._request("GET", "/tasks/my", params=params)

    def get_stage(self, stage_id: int) -> dict:
        self._require_auth()
        return self._request("GET", f"/tasks/{stage_id}")

    def get_project(self, project_id: int) -> dict:
        self._require_auth()
        return self._request("GET", f"/projects/{project_id}")

    def get_submission(self, stage_id: int, index: int) -> dict:
        self._require_auth()
        return self._request("GET", f"/tasks/{stage_id}/checklist/{index}/submission")

    def unread_count(self) -> int:
        self._require_auth()
        return int(self._request("GET", "/notifications/unread-count").get("unread_count", 0))

    def hydrate_projects(self, project_ids) -> list[dict]:
        """Fetch project details one by one; failures are skipped, not fatal."""
        self._require_auth()
        result = []
        for project_id in project_ids:
            try:
                result.append(self.get_project(project_id))
            except (TransportError, AuthorizationError, NotFoundError) as exc:
                logger.warning("Skipping project %s during hydration: %s", project_id, exc)
        return result

    # ── Checklist objective ──────────────────────────────────────────────────

    def submit_objective(
        self,
        stage: dict,
        index: int,
        description: str,
        images=None,
        documents=None,
    ) -> dict:
        """Submit evidence for one checklist item of an already-fetched stage."""
        auth = self._require_auth()
        executor_id, member_ids = _stage_actors(stage)
        check_may_act(executor_id, member_ids, auth.user_id, "submit_objective")
        check_objective_gate(_item_status(stage, index))
        text = validate_description(description)
        body = {
            "description": text,
            "images": validate_images(images),
            "documents": validate_documents(documents),
        }
        return self._request("POST", f"/tasks/{stage['id']}/checklist/{index}/submit", json_body=body)

    # ── Deliverable ──────────────────────────────────────────────────────────

    def submit_deliverable(self, stage: dict, description: str, image=None) -> dict:
        auth = self._require_auth()
        executor_id, member_ids = _stage_actors(stage)
        check_may_act(executor_id, member_ids, auth.user_id, "submit_deliverable")
        check_deliverable_gate(stage.get("status"), int(stage.get("items_marked") or 0))
        body = {"description": validate_description(description)}
        image = validate_single_image(image)
        if image:
            body["image"] = image
        return self._request("POST", f"/tasks/{stage['id']}/deliver", json_body=body)

    def edit_deliverable(self, stage: dict, description: str, image=None) -> dict:
        """Replace the description / image of the pending deliverable."""
        auth = self._require_auth()
        executor_id, member_ids = _stage_actors(stage)
        check_may_act(executor_id, member_ids, auth.user_id, "edit_deliverable")
        latest = stage.get("latest_deliverable") or {}
        if latest.get("status") != "UNDER_REVIEW" or stage.get("status") != "UNDER_REVIEW":
            raise TransitionError("deliverable", "edit", latest.get("status"),
                                  "Only a deliverable under review can be edited")
        body = {"description": validate_description(description)}
        image = validate_single_image(image)
        if image:
            body["image"] = image
        return self._request("PATCH", f"/tasks/{stage['id']}/deliver/{latest['id']}", json_body=body)
