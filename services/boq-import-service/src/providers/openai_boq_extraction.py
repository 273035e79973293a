"""
OpenAI-powered extraction of BOQ line items from document text.

Uses function calling so the model's output is constrained to
BOQ_EXTRACTION_SCHEMA. Every failure (transport, timeout, missing tool call,
invalid JSON) surfaces as ExtractionProviderError; nothing is retried.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from openai import APIError, APITimeoutError, OpenAI
from shared.observability.privacy import hash_payload

from extraction_provider import (
    BOQ_EXTRACTION_SCHEMA,
    ExtractionProviderError,
    ExtractionProviderRequest,
    log_extraction_request,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a construction BOQ (Bill of Quantities) parser. Extract line items from the provided BOQ document text.

For each item, extract:
- code: item code or serial number if present
- description: full description of the work or material
- unit: unit of measurement (sqft, cum, kg, nos, etc.)
- quantity: numeric quantity
- rate: unit rate or price
- section_name: the section this item belongs to (e.g. "EARTHWORK", "CONCRETE WORK")
- category: one of MATERIAL, LABOUR, SUB_WORK, EQUIPMENT or OTHER

Rules:
1. Skip header rows, totals and subtotals.
2. If quantity or rate is missing, set it to 0 and flag the item for review.
3. Detect the section from context (usually bold or uppercase headings).
4. Be conservative: if unsure about a value, flag the item and give a short reason.

Return the result through the extract_boq_items function."""

USER_PROMPT_TEMPLATE = """Parse this BOQ document:

{document_text}"""


class OpenAIBoqExtractionProvider:
    """ChatGPT-backed extraction provider."""

    name = "openai"

    def __init__(self, settings: Any | None = None, client: Any | None = None):
        self._settings = settings
        if client is not None:
            self._client = client
            self._model = settings.openai.model if settings and settings.openai else "gpt-4o-mini"
        elif settings and settings.openai:
            self._client = OpenAI(
                api_key=settings.openai.api_key,
                base_url=settings.openai.api_base,
                timeout=settings.timeout_seconds,
                max_retries=0,
            )
            self._model = settings.openai.model
        else:
            self._client = None
            self._model = None
        self._temperature = settings.temperature if settings else 0.1
        self._max_tokens = settings.max_output_tokens if settings else 4096

    def extract(self, request: ExtractionProviderRequest) -> Mapping[str, Any]:
        if not self._client:
            raise ExtractionProviderError("OpenAI client not configured. Check OPENAI_API_KEY and OPENAI_MODEL.")

        user_prompt = USER_PROMPT_TEMPLATE.format(document_text=request.text)
        log_extraction_request(self.name, request)

        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": user_prompt},
                ],
                tools=[
                    {
                        "type": "function",
                        "function": {
                            "name": "extract_boq_items",
                            "description": "Return the BOQ line items found in the document.",
                            "parameters": BOQ_EXTRACTION_SCHEMA,
                        },
                    }
                ],
                tool_choice={"type": "function", "function": {"name": "extract_boq_items"}},
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except (APIError, APITimeoutError) as exc:
            logger.error(
                {
                    "event": "openai_extraction_error",
                    "provider": self.name,
                    "error_type": type(exc).__name__,
                    "error_message": str(exc),
                }
            )
            raise ExtractionProviderError(f"AI extraction failed: {type(exc).__name__}") from exc

        choices = getattr(response, "choices", None) or []
        tool_calls = choices[0].message.tool_calls if choices else None
        if not tool_calls:
            logger.warning({"event": "openai_no_tool_calls", "provider": self.name})
            raise ExtractionProviderError("No response from AI")

        try:
            parsed = json.loads(tool_calls[0].function.arguments)
        except (json.JSONDecodeError, TypeError) as exc:
            logger.error({"event": "openai_json_parse_error", "provider": self.name, "error_message": str(exc)})
            raise ExtractionProviderError("AI response was not valid JSON") from exc

        logger.info(
            {
                "event": "openai_extraction_response",
                "provider": self.name,
                "model": self._model,
                "item_count": len(parsed.get("items") or []) if isinstance(parsed, dict) else None,
                "response_hash": hash_payload(parsed),
            }
        )
        return parsed
