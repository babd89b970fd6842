import logging
from typing import Any, AsyncIterator, Mapping, Optional, Sequence

from app.common.errors import ValidationError
from app.insights.application.ports import TextGenerationProvider
from app.insights.application.prompts import PROMPT_STYLES, Prompt, build_prompt
from app.insights.domain.models import MaterialSummary, NarrativeInput, RequestLine

logger = logging.getLogger(__name__)

SUMMARY_MISSING = "Summary data is missing"


def build_narrative_input(
    company_id: str,
    summary: Optional[MaterialSummary],
    requests: Optional[Sequence[RequestLine]] = None,
) -> NarrativeInput:
    if summary is None:
        raise ValidationError(SUMMARY_MISSING)
    return NarrativeInput(
        company_id=company_id,
        summary=summary,
        requests=tuple(requests or ()),
    )


def summary_from_payload(payload: Optional[Mapping[str, Any]]) -> Optional[MaterialSummary]:
    """Read the camelCase summary object sent by clients."""
    if payload is None:
        return None
    return MaterialSummary(
        total_requests=payload.get("totalRequests", 0),
        pending_count=payload.get("pendingCount", 0),
        urgent_pending_count=payload.get("urgentPendingCount", 0),
        approved_count=payload.get("approvedCount", 0),
        fulfilled_count=payload.get("fulfilledCount", 0),
    )


async def _empty() -> AsyncIterator[str]:
    return
    yield


async def _relay(first: str, upstream: AsyncIterator[str]) -> AsyncIterator[str]:
    try:
        yield first
        async for fragment in upstream:
            yield fragment
    finally:
        await upstream.aclose()


class GenerateRiskNarrativeUseCase:
    """Turn a material summary into a Markdown risk report via the text provider.

    ``generate`` waits for the full text. ``open_stream`` waits only for the
    first fragment, so a provider that fails up front is reported as an error
    instead of an empty stream. Closing the returned iterator closes the
    upstream response.
    """

    def __init__(self, provider: TextGenerationProvider, prompt_style: str = "concise") -> None:
        if prompt_style not in PROMPT_STYLES:
            raise ValueError(f"Unknown prompt style: {prompt_style}")
        self._provider = provider
        self._prompt_style = prompt_style

    def prompt_for(self, narrative_input: NarrativeInput) -> Prompt:
        return build_prompt(narrative_input, self._prompt_style)

    async def generate(self, narrative_input: NarrativeInput) -> str:
        prompt = self.prompt_for(narrative_input)
        logger.info(f"Generating risk narrative for company {narrative_input.company_id}")
        return await self._provider.generate(prompt)

    async def open_stream(self, narrative_input: NarrativeInput) -> AsyncIterator[str]:
        prompt = self.prompt_for(narrative_input)
        logger.info(f"Streaming risk narrative for company {narrative_input.company_id}")

        upstream = self._provider.stream(prompt)
        try:
            first = await upstream.__anext__()
        except StopAsyncIteration:
            await upstream.aclose()
            return _empty()
        except BaseException:
            await upstream.aclose()
            raise
        return _relay(first, upstream)
