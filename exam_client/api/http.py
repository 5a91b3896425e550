import logging
from typing import Any, Dict, List, Optional

import httpx

from exam_client.config import Settings
from exam_client.errors import (
    ApiError,
    AttemptFinishedError,
    AuthorizationError,
    NotFoundError,
    TransportError,
)
from exam_client.models import (
    ActiveAttempt,
    AttemptResult,
    HistoryPage,
    JoinPairingResponse,
    Role,
    StartAttemptResponse,
    SubmitResult,
    TemplateSummary,
    User,
)

logger = logging.getLogger(__name__)

FINISHED = {"completed", "timed_out"}


def _error_message(response: httpx.Response, fallback: str) -> str:
    try:
        data = response.json()
    except ValueError:
        return fallback
    if isinstance(data, dict):
        return data.get("message") or data.get("detail") or fallback
    return fallback


def _error_status(response: httpx.Response) -> Optional[str]:
    try:
        data = response.json()
    except ValueError:
        return None
    return data.get("status") if isinstance(data, dict) else None


class ApiClient:
    """
    REST operations of the exam backend.

    One httpx.AsyncClient per login session; the backend authenticates with
    a session cookie, which httpx keeps in `self.cookies` and which the
    realtime channel forwards when it connects.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = client or httpx.AsyncClient(
            base_url=settings.api_url,
            timeout=settings.request_timeout,
            headers={"Content-Type": "application/json"},
        )

    @property
    def cookies(self) -> Dict[str, str]:
        return dict(self._client.cookies.items())

    async def aclose(self):
        await self._client.aclose()

    async def _request(self, method: str, path: str, fallback: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise TransportError(fallback) from e

        if response.is_error:
            message = _error_message(response, fallback)
            logger.warning(
                "%s %s returned %s: %s", method, path, response.status_code, message
            )
            if response.status_code in (401, 403):
                raise AuthorizationError(message, response.status_code)
            if response.status_code == 404:
                raise NotFoundError(message, response.status_code)
            if response.status_code == 409 and _error_status(response) in FINISHED:
                raise AttemptFinishedError(message, status=_error_status(response))
            raise ApiError(message, response.status_code)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(fallback, response.status_code) from e

    # --- auth ---

    async def me(self) -> User:
        data = await self._request("GET", "/auth/me", "Not logged in or session expired")
        return User.model_validate(data)

    async def login(self, username: str, password: str) -> User:
        data = await self._request(
            "POST",
            "/auth/login",
            "Login failed, check username and password",
            json={"username": username, "password": password},
        )
        if data.get("user"):
            return User.model_validate(data["user"])
        return await self.me()

    async def register(self, username: str, password: str, role: str = "user") -> str:
        data = await self._request(
            "POST",
            "/auth/register",
            "Registration failed, the username may be taken",
            json={"username": username, "password": password, "role": role},
        )
        return data.get("message", "")

    async def logout(self) -> str:
        data = await self._request("POST", "/auth/logout", "Logout failed")
        return data.get("message", "")

    # --- templates ---

    async def get_active_templates(self) -> List[TemplateSummary]:
        data = await self._request(
            "GET", "/templates", "Could not load exam templates, please retry"
        )
        return [TemplateSummary.model_validate(item) for item in data or []]

    # --- attempts ---

    async def start_attempt(
        self, template_id: int, role: Optional[Role] = None
    ) -> StartAttemptResponse:
        payload: Dict[str, Any] = {"templateId": template_id}
        if role is not None:
            payload["role"] = Role(role).value
        data = await self._request(
            "POST", "/attempts/start", "Could not start the attempt", json=payload
        )
        return StartAttemptResponse.model_validate(data)

    async def join_pairing(self, pairing_code: str, template_id: int) -> JoinPairingResponse:
        data = await self._request(
            "POST",
            "/attempts/join_pairing",
            "Pairing failed, check the code or retry later",
            json={"pairingCode": pairing_code, "templateId": template_id},
        )
        return JoinPairingResponse.model_validate(data)

    async def get_active_attempt(self, attempt_id: int) -> ActiveAttempt:
        """A finished attempt comes back as 409 -> AttemptFinishedError"""
        data = await self._request(
            "GET", f"/attempts/{attempt_id}/active", "Could not load the attempt"
        )
        return ActiveAttempt.model_validate(data)

    async def submit_attempt(
        self, attempt_id: int, answers: List[Dict[str, Any]]
    ) -> SubmitResult:
        data = await self._request(
            "POST",
            f"/attempts/{attempt_id}/submit",
            "Error while submitting answers",
            json={"answers": answers},
        )
        return SubmitResult.model_validate(data)

    async def get_attempt_result(self, attempt_id: int) -> AttemptResult:
        data = await self._request(
            "GET", f"/attempts/{attempt_id}", "Could not load the attempt details"
        )
        return AttemptResult.model_validate(data)

    async def get_history(self, page: int = 1, per_page: int = 10) -> HistoryPage:
        data = await self._request(
            "GET",
            "/attempts",
            "Could not load history",
            params={"page": page, "per_page": per_page},
        )
        return HistoryPage.model_validate(data)
