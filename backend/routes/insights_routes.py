"""
Risk Insight Route
Forwards a material summary to the text-generation provider and relays the narrative
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from pydantic import BaseModel
from typing import AsyncIterator, List, Optional
import logging

from database import app_settings
from app.common.errors import UpstreamProviderError, ValidationError
from app.insights.application.use_cases import (
    GenerateRiskNarrativeUseCase,
    build_narrative_input,
    summary_from_payload,
)
from app.insights.domain.models import RequestLine
from app.insights.infrastructure.groq_provider import GroqTextGenerationProvider

logger = logging.getLogger(__name__)

insights_router = APIRouter(prefix="/api", tags=["Risk Insight"])

TEXT_MEDIA_TYPE = "text/plain; charset=utf-8"
FAILURE_MESSAGE = "Failed to generate insights"


# ==================== PYDANTIC MODELS ====================

class MaterialSummaryPayload(BaseModel):
    totalRequests: int
    pendingCount: int
    urgentPendingCount: int
    approvedCount: int
    fulfilledCount: int


class RequestLinePayload(BaseModel):
    material_name: str
    quantity: float
    unit: str
    status: str
    priority: str


class RiskInsightRequest(BaseModel):
    companyId: str = ""
    summary: Optional[MaterialSummaryPayload] = None
    requests: Optional[List[RequestLinePayload]] = None


# ==================== DEPENDENCIES ====================

def get_text_generation_provider() -> GroqTextGenerationProvider:
    return GroqTextGenerationProvider(
        api_key=app_settings.groq_api_key,
        model=app_settings.groq_model,
        base_url=app_settings.groq_base_url,
        timeout=app_settings.groq_timeout_seconds,
    )


def get_narrative_use_case(
    provider=Depends(get_text_generation_provider)
) -> GenerateRiskNarrativeUseCase:
    return GenerateRiskNarrativeUseCase(provider, prompt_style=app_settings.narrative_prompt_style)


def get_delivery_mode() -> str:
    return app_settings.narrative_delivery_mode


def error_response(status_code: int, details: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": FAILURE_MESSAGE, "details": details},
    )


async def relay_stream(stream: AsyncIterator[str]) -> AsyncIterator[str]:
    try:
        async for fragment in stream:
            yield fragment
    except UpstreamProviderError as exc:
        logger.error(f"Risk insight stream terminated early: {exc.message}")
    finally:
        await stream.aclose()


# ==================== ROUTES ====================

@insights_router.post("/risk-insight")
async def risk_insight(
    body: RiskInsightRequest,
    use_case: GenerateRiskNarrativeUseCase = Depends(get_narrative_use_case),
    delivery_mode: str = Depends(get_delivery_mode)
):
    """Generate a Markdown risk narrative for a company's material summary"""
    try:
        narrative_input = build_narrative_input(
            company_id=body.companyId,
            summary=summary_from_payload(body.summary.model_dump() if body.summary else None),
            requests=[
                RequestLine(
                    material_name=item.material_name,
                    quantity=item.quantity,
                    unit=item.unit,
                    status=item.status,
                    priority=item.priority,
                )
                for item in body.requests or []
            ],
        )
    except ValidationError as exc:
        logger.warning(f"Rejected risk insight request: {exc.message}")
        return error_response(500, exc.message)

    try:
        if delivery_mode == "buffered":
            text = await use_case.generate(narrative_input)
            return PlainTextResponse(text, media_type=TEXT_MEDIA_TYPE)

        stream = await use_case.open_stream(narrative_input)
    except UpstreamProviderError as exc:
        logger.error(f"Error in risk-insight route: {exc.message}")
        return error_response(500, exc.message)

    return StreamingResponse(relay_stream(stream), media_type=TEXT_MEDIA_TYPE)
