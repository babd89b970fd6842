import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from app.insights.domain.models import MaterialSummary
from app.sync.cache import QueryCache, Snapshot, collection_predicate
from app.sync.coordinator import MATERIAL_REQUESTS, OptimisticMutationCoordinator
from app.sync.gateway import MaterialRequestsGateway
from app.sync.session import SessionState, SessionUser

logger = logging.getLogger(__name__)


class MaterialRequestsClient:
    """Cached, optimistically-updated access to the material requests API.

    List reads go through the query cache keyed by status filter. Updates go
    through the mutation coordinator. Summaries for the risk insight are
    computed locally from the unfiltered list.
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[SessionState] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.session = session or SessionState()
        self.cache = QueryCache()
        self.gateway = MaterialRequestsGateway(base_url, self.session, transport=transport)
        self.coordinator = OptimisticMutationCoordinator(self.cache, self.gateway)
        self._company_id = self._session_company(self.session)
        self._unsubscribe = self.session.subscribe(self._on_session_change)

    async def __aenter__(self) -> "MaterialRequestsClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self._unsubscribe()
        await self.cache.wait_idle()
        await self.gateway.aclose()

    async def sign_in(self, email: str, password: str) -> SessionUser:
        return await self.gateway.sign_in(email, password)

    def sign_out(self) -> None:
        self.session.sign_out()

    async def requests(self, status: str = "all") -> Snapshot:
        return await self.cache.fetch(
            (MATERIAL_REQUESTS, status),
            lambda: self.gateway.list_requests(status),
        )

    async def create(
        self,
        material_name: str,
        quantity: float,
        unit: str,
        priority: str = "medium",
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        created = await self.gateway.create_request(
            material_name=material_name,
            quantity=quantity,
            unit=unit,
            priority=priority,
            notes=notes,
        )
        self.cache.invalidate(collection_predicate(MATERIAL_REQUESTS))
        return created

    async def update(self, request_id: str, **patch: Any) -> Optional[Dict[str, Any]]:
        return await self.coordinator.apply_update(request_id, patch)

    async def update_status(self, request_id: str, status: str) -> Optional[Dict[str, Any]]:
        return await self.coordinator.update_status(request_id, status)

    async def summarize(self) -> MaterialSummary:
        return MaterialSummary.from_requests(await self.requests("all"))

    async def insight(self, include_requests: bool = True) -> str:
        company_id = self.session.require_company_id()
        rows = await self.requests("all")
        return await self.gateway.generate_insight(
            company_id,
            MaterialSummary.from_requests(rows).to_dict(),
            rows if include_requests else None,
        )

    async def stream_insight(self, include_requests: bool = True) -> AsyncIterator[str]:
        company_id = self.session.require_company_id()
        rows = await self.requests("all")
        return self.gateway.stream_insight(
            company_id,
            MaterialSummary.from_requests(rows).to_dict(),
            rows if include_requests else None,
        )

    @staticmethod
    def _session_company(session: SessionState) -> Optional[str]:
        return session.user.company_id if session.user else None

    def _on_session_change(self, event: str, session: SessionState) -> None:
        company_id = self._session_company(session)
        if event == "signed_out" or company_id != self._company_id:
            # Rows of the previous company must not stay readable
            self.cache.drop(collection_predicate(MATERIAL_REQUESTS))
        else:
            self.cache.invalidate(collection_predicate(MATERIAL_REQUESTS))
        self._company_id = company_id
