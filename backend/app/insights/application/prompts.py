"""
Prompt templates for the material request risk narrative.

Two styles are available. ``detailed`` is the long-form report with a
Key Metrics section. ``concise`` caps the answer at 150 words and drops
Key Metrics. Both share the same formatting rules.
"""
from dataclasses import dataclass
from typing import Optional, Sequence

from app.insights.domain.models import NarrativeInput, RequestLine

NO_REQUESTS_LINE = "No individual request data available."

PROMPT_STYLES = ("concise", "detailed")

FORMATTING_RULES = """RESPONSE FORMATTING RULES:
- Use strictly MARKDOWN format.
- DO NOT use tables, graphs, or code blocks.
- Use h3 (###) for section headers.
- Use bold text (**text**) for key metrics and emphasis.
- Use bullet points for lists.
- Keep the tone professional, direct, and insight-driven."""

DETAILED_SYSTEM_PROMPT = f"""
You are an expert Construction Supply Chain Risk Analyst.
Your goal is to provide a strategic, actionable assessment of procurement health based on material request data.
Focus on operational efficiency, potential bottlenecks, and financial implications.

{FORMATTING_RULES}

STRUCTURE YOUR RESPONSE AS FOLLOWS:

### Executive Summary
A 2-sentence high-level overview of the current procurement status.

### Key Metrics
List the core numbers using bullet points with bold values (e.g., - **Total Requests:** 15).

### Critical Risk Assessment
Identify 2-3 specific risks. For each, provide a brief explanation of why it matters.
Example:
- **High Pending Volume:** 40% of requests are pending, which may delay project timelines.

### Strategic Recommendations
Provide 2-3 actionable steps to improve the workflow immediately.
"""

CONCISE_SYSTEM_PROMPT = f"""
You are an expert Construction Supply Chain Risk Analyst.
Give a short, actionable assessment of procurement health based on material request data.
Your entire response must be a maximum of 150 words.

{FORMATTING_RULES}

STRUCTURE YOUR RESPONSE AS FOLLOWS:

### Summary
One sentence on the current procurement status.

### Risks
Up to 3 bullet points, each starting with a bold label (e.g., - **Urgent Backlog:** 2 urgent requests are still pending).

### Recommended Actions
Up to 3 bullet points with concrete next steps.
"""

USER_PROMPT_TEMPLATE = """
Analyze the following material request data for company {company_id}:

- Total Requests: {total_requests}
- Pending Requests: {pending_count}
- Urgent Pending Requests: {urgent_pending_count}
- Approved Requests: {approved_count}
- Fulfilled Requests: {fulfilled_count}

Individual requests:
{requests_section}

{closing}
"""

CLOSING_LINES = {
    "detailed": "Provide a comprehensive risk analysis following the defined structure.",
    "concise": "Provide a concise risk analysis following the defined structure.",
}


@dataclass(frozen=True)
class Prompt:
    system: str
    user: str


def format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def render_request_line(request: RequestLine) -> str:
    return (
        f"- {request.material_name}: {format_number(request.quantity)} {request.unit} "
        f"({request.status}, {request.priority})"
    )


def render_requests_section(requests: Optional[Sequence[RequestLine]]) -> str:
    if not requests:
        return NO_REQUESTS_LINE
    return "\n".join(render_request_line(request) for request in requests)


def build_prompt(narrative_input: NarrativeInput, style: str = "concise") -> Prompt:
    if style not in PROMPT_STYLES:
        raise ValueError(f"Unknown prompt style: {style}")

    summary = narrative_input.summary
    user = USER_PROMPT_TEMPLATE.format(
        company_id=narrative_input.company_id,
        total_requests=summary.total_requests,
        pending_count=summary.pending_count,
        urgent_pending_count=summary.urgent_pending_count,
        approved_count=summary.approved_count,
        fulfilled_count=summary.fulfilled_count,
        requests_section=render_requests_section(narrative_input.requests),
        closing=CLOSING_LINES[style],
    )
    system = DETAILED_SYSTEM_PROMPT if style == "detailed" else CONCISE_SYSTEM_PROMPT
    return Prompt(system=system, user=user)
