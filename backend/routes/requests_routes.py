"""
Material Requests Routes
Company-scoped create, list, update, summary and CSV export
"""
from fastapi import APIRouter, HTTPException, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
import uuid

from database import get_postgres_session
from app.common.errors import DomainError, NotFound, ValidationError
from app.requests.application.use_cases import (
    CreateMaterialRequestCommand,
    CreateMaterialRequestUseCase,
    GetMaterialRequestUseCase,
    ListMaterialRequestsQuery,
    ListMaterialRequestsUseCase,
    SummarizeMaterialRequestsUseCase,
    UpdateMaterialRequestUseCase,
)
from app.requests.domain.models import Principal
from app.requests.infrastructure.sqlalchemy_repository import (
    SqlAlchemyMaterialRequestRepository,
)
from app.requests.presentation.response_mapper import (
    material_request_to_response,
    material_requests_to_csv,
)
from routes.auth_routes import get_current_principal

# Create router
requests_router = APIRouter(prefix="/api", tags=["Material Requests"])

EXPORT_LIMIT = 10000


# ==================== PYDANTIC MODELS ====================

class MaterialRequestCreate(BaseModel):
    material_name: str
    quantity: float
    unit: str
    priority: str = "medium"
    notes: Optional[str] = None


class MaterialRequestUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    material_name: Optional[str] = None
    quantity: Optional[float] = None
    unit: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    notes: Optional[str] = None


# ==================== DEPENDENCIES ====================

def get_material_request_repository(
    session: AsyncSession = Depends(get_postgres_session)
) -> SqlAlchemyMaterialRequestRepository:
    return SqlAlchemyMaterialRequestRepository(session)


def to_http_exception(exc: DomainError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=exc.message)
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=exc.message)
    return HTTPException(status_code=500, detail=exc.message)


# ==================== MATERIAL REQUESTS ROUTES ====================

@requests_router.post("/material-requests", status_code=201)
async def create_material_request(
    request_data: MaterialRequestCreate,
    principal: Principal = Depends(get_current_principal),
    repository=Depends(get_material_request_repository)
):
    """Create a new material request in the caller's company"""
    use_case = CreateMaterialRequestUseCase(
        repository=repository,
        id_generator=lambda: str(uuid.uuid4()),
        clock=datetime.utcnow,
    )
    command = CreateMaterialRequestCommand(
        material_name=request_data.material_name,
        quantity=request_data.quantity,
        unit=request_data.unit,
        priority=request_data.priority,
        notes=request_data.notes,
    )

    try:
        request = await use_case.execute(command, principal)
    except DomainError as exc:
        raise to_http_exception(exc)

    return material_request_to_response(request)


@requests_router.get("/material-requests")
async def get_material_requests(
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    principal: Principal = Depends(get_current_principal),
    repository=Depends(get_material_request_repository)
):
    """List the caller's company requests, newest first"""
    use_case = ListMaterialRequestsUseCase(repository)
    query = ListMaterialRequestsQuery(status=status, limit=limit, offset=offset)

    try:
        requests = await use_case.execute(query, principal)
    except DomainError as exc:
        raise to_http_exception(exc)

    return [material_request_to_response(req) for req in requests]


@requests_router.get("/material-requests/summary")
async def get_material_requests_summary(
    principal: Principal = Depends(get_current_principal),
    repository=Depends(get_material_request_repository)
):
    """Counts of total/pending/urgent-pending/approved/fulfilled requests"""
    try:
        summary = await SummarizeMaterialRequestsUseCase(repository).execute(principal)
    except DomainError as exc:
        raise to_http_exception(exc)

    return summary.to_dict()


@requests_router.get("/material-requests/export")
async def export_material_requests(
    status: Optional[str] = None,
    principal: Principal = Depends(get_current_principal),
    repository=Depends(get_material_request_repository)
):
    """Export the caller's company requests to CSV"""
    use_case = ListMaterialRequestsUseCase(repository, max_limit=EXPORT_LIMIT)
    query = ListMaterialRequestsQuery(status=status, limit=EXPORT_LIMIT, offset=0)

    try:
        requests = await use_case.execute(query, principal)
    except DomainError as exc:
        raise to_http_exception(exc)

    filename = f"material-requests-{datetime.utcnow().strftime('%Y-%m-%d')}.csv"
    return StreamingResponse(
        iter([material_requests_to_csv(requests)]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@requests_router.get("/material-requests/{request_id}")
async def get_material_request(
    request_id: str,
    principal: Principal = Depends(get_current_principal),
    repository=Depends(get_material_request_repository)
):
    """Get a single material request"""
    try:
        request = await GetMaterialRequestUseCase(repository).execute(request_id, principal)
    except DomainError as exc:
        raise to_http_exception(exc)

    return material_request_to_response(request)


@requests_router.patch("/material-requests/{request_id}")
async def update_material_request(
    request_id: str,
    update_data: MaterialRequestUpdate,
    principal: Principal = Depends(get_current_principal),
    repository=Depends(get_material_request_repository)
):
    """Update the mutable fields of a material request"""
    use_case = UpdateMaterialRequestUseCase(repository, clock=datetime.utcnow)

    try:
        request = await use_case.execute(
            request_id, update_data.model_dump(exclude_unset=True), principal
        )
    except DomainError as exc:
        raise to_http_exception(exc)

    return material_request_to_response(request)
