from datetime import datetime
from typing import Optional, Sequence, Tuple

from sqlalchemy import desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.requests.application.ports import MaterialRequestRepository
from app.requests.domain.models import MaterialRequest, RequestFilters, RequestPatch
from database import MaterialRequest as MaterialRequestModel


def _to_domain(row: MaterialRequestModel) -> MaterialRequest:
    return MaterialRequest(
        id=row.id,
        material_name=row.material_name,
        quantity=row.quantity,
        unit=row.unit,
        status=row.status,
        priority=row.priority,
        notes=row.notes,
        requested_by=row.requested_by,
        requested_at=row.requested_at,
        updated_at=row.updated_at,
        company_id=row.company_id,
    )


class SqlAlchemyMaterialRequestRepository(MaterialRequestRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add_request(self, request: MaterialRequest) -> None:
        new_request = MaterialRequestModel(
            id=request.id,
            material_name=request.material_name,
            quantity=request.quantity,
            unit=request.unit,
            status=request.status,
            priority=request.priority,
            notes=request.notes,
            requested_by=request.requested_by,
            company_id=request.company_id,
            requested_at=request.requested_at,
            updated_at=request.updated_at,
        )
        self._session.add(new_request)

    async def get_request(
        self, request_id: str, company_id: str
    ) -> Optional[MaterialRequest]:
        result = await self._session.execute(
            select(MaterialRequestModel).where(
                MaterialRequestModel.id == request_id,
                MaterialRequestModel.company_id == company_id,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return _to_domain(row)

    async def list_requests(self, filters: RequestFilters) -> Sequence[MaterialRequest]:
        query = select(MaterialRequestModel).where(
            MaterialRequestModel.company_id == filters.company_id
        )
        if filters.status:
            query = query.where(MaterialRequestModel.status == filters.status)

        query = query.order_by(desc(MaterialRequestModel.requested_at))
        query = query.limit(filters.limit).offset(filters.offset)

        result = await self._session.execute(query)
        return [_to_domain(row) for row in result.scalars().all()]

    async def update_request(
        self,
        request_id: str,
        company_id: str,
        patch: RequestPatch,
        updated_at: datetime,
    ) -> Optional[MaterialRequest]:
        result = await self._session.execute(
            update(MaterialRequestModel)
            .where(
                MaterialRequestModel.id == request_id,
                MaterialRequestModel.company_id == company_id,
            )
            .values(**patch, updated_at=updated_at)
            .returning(MaterialRequestModel)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return _to_domain(row)

    async def count_by_status(self, company_id: str) -> Sequence[Tuple[str, str, int]]:
        result = await self._session.execute(
            select(
                MaterialRequestModel.status,
                MaterialRequestModel.priority,
                func.count(MaterialRequestModel.id),
            )
            .where(MaterialRequestModel.company_id == company_id)
            .group_by(MaterialRequestModel.status, MaterialRequestModel.priority)
        )
        return [(status, priority, count) for status, priority, count in result.all()]

    async def commit(self) -> None:
        await self._session.commit()
