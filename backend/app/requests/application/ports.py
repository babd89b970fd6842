from datetime import datetime
from typing import Optional, Protocol, Sequence, Tuple

from app.requests.domain.models import MaterialRequest, RequestFilters, RequestPatch


class MaterialRequestRepository(Protocol):
    async def add_request(self, request: MaterialRequest) -> None:
        ...

    async def get_request(
        self, request_id: str, company_id: str
    ) -> Optional[MaterialRequest]:
        ...

    async def list_requests(self, filters: RequestFilters) -> Sequence[MaterialRequest]:
        ...

    async def update_request(
        self,
        request_id: str,
        company_id: str,
        patch: RequestPatch,
        updated_at: datetime,
    ) -> Optional[MaterialRequest]:
        ...

    async def count_by_status(self, company_id: str) -> Sequence[Tuple[str, str, int]]:
        """Return (status, priority, count) rows for one company."""
        ...

    async def commit(self) -> None:
        ...
