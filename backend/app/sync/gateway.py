import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx

from app.common.errors import (
    AuthenticationError,
    DomainError,
    MutationConflictError,
    NotFound,
    UpstreamProviderError,
    ValidationError,
)
from app.insights.application.use_cases import SUMMARY_MISSING
from app.requests.domain.models import RequestPatch
from app.sync.session import SessionState, SessionUser

logger = logging.getLogger(__name__)


def error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        if data.get("details"):
            return str(data["details"])
        if data.get("detail"):
            return str(data["detail"])
        if data.get("error"):
            return str(data["error"])
    return f"HTTP {response.status_code}"


def raise_for_status(response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    message = error_detail(response)
    if response.status_code == 401:
        raise AuthenticationError(message)
    if response.status_code == 404:
        raise NotFound(message)
    if response.status_code in (400, 422):
        raise ValidationError(message)
    raise DomainError(message)


def raise_for_insight(response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    message = error_detail(response)
    # The insight endpoint reports a missing summary with the same 500 as a provider failure
    if response.status_code == 400 or message == SUMMARY_MISSING:
        raise ValidationError(message)
    raise UpstreamProviderError(message)


class MaterialRequestsGateway:
    """HTTP access to the material requests API for one session."""

    def __init__(
        self,
        base_url: str,
        session: SessionState,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._session = session
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._session.require_token()}"}

    async def sign_in(self, email: str, password: str) -> SessionUser:
        response = await self._http.post("/api/auth/sign-in", json={"email": email, "password": password})
        raise_for_status(response)
        data = response.json()
        user = SessionUser(
            id=data["user"]["id"],
            email=data["user"]["email"],
            company_id=data["user"].get("company_id"),
            full_name=data["user"].get("full_name"),
        )
        self._session.sign_in(data["access_token"], user)
        return user

    async def list_requests(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"status": status} if status and status != "all" else {}
        response = await self._http.get(
            "/api/material-requests", params=params, headers=self._auth_headers()
        )
        raise_for_status(response)
        return response.json()

    async def create_request(self, **fields: Any) -> Dict[str, Any]:
        response = await self._http.post(
            "/api/material-requests", json=fields, headers=self._auth_headers()
        )
        raise_for_status(response)
        return response.json()

    async def update_request(self, request_id: str, patch: RequestPatch) -> Dict[str, Any]:
        headers = self._auth_headers()
        try:
            response = await self._http.patch(
                f"/api/material-requests/{request_id}", json=patch, headers=headers
            )
        except httpx.HTTPError as e:
            raise MutationConflictError(f"Update request failed: {e}")

        if response.status_code == 401:
            raise AuthenticationError(error_detail(response))
        if response.status_code >= 400:
            raise MutationConflictError(error_detail(response))
        return response.json()

    async def summary(self) -> Dict[str, int]:
        response = await self._http.get("/api/material-requests/summary", headers=self._auth_headers())
        raise_for_status(response)
        return response.json()

    def _insight_body(
        self,
        company_id: str,
        summary: Optional[Dict[str, int]],
        requests: Optional[Sequence[Dict[str, Any]]],
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"companyId": company_id, "summary": summary}
        if requests:
            body["requests"] = [
                {
                    "material_name": row["material_name"],
                    "quantity": row["quantity"],
                    "unit": row["unit"],
                    "status": row["status"],
                    "priority": row["priority"],
                }
                for row in requests
            ]
        return body

    async def generate_insight(
        self,
        company_id: str,
        summary: Optional[Dict[str, int]],
        requests: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> str:
        try:
            response = await self._http.post(
                "/api/risk-insight", json=self._insight_body(company_id, summary, requests)
            )
        except httpx.HTTPError as e:
            raise UpstreamProviderError(f"Failed to fetch AI insight: {e}")

        raise_for_insight(response)
        return response.text

    async def stream_insight(
        self,
        company_id: str,
        summary: Optional[Dict[str, int]],
        requests: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> AsyncIterator[str]:
        """Yield narrative text as it arrives; closing the iterator closes the HTTP stream."""
        body = self._insight_body(company_id, summary, requests)
        try:
            async with self._http.stream("POST", "/api/risk-insight", json=body) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise_for_insight(response)

                async for fragment in response.aiter_text():
                    if fragment:
                        yield fragment
        except httpx.HTTPError as e:
            raise UpstreamProviderError(f"Failed to stream AI insight: {e}")
