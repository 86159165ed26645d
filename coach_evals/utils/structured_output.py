"""Best-effort extraction of JSON objects from free-form model replies.

Models asked for "ONLY JSON" still wrap it in markdown fences or add a
sentence before and after. Extraction either yields a validated record or
``None``; a half-parsed object never leaves this module.
"""

from __future__ import annotations

import json
import re
from typing import Any, TypeVar

import structlog
from langchain_core.utils.json import parse_json_markdown
from pydantic import BaseModel, ValidationError

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the first JSON object found in ``text``, or None.

    Tries the fenced/bare markdown parser first, then falls back to the span
    from the first ``{`` to the last ``}``. Both parse strictly, so a reply
    cut off mid-object is rejected rather than closed up.
    """
    if not text or not text.strip():
        return None

    try:
        data = parse_json_markdown(text, parser=json.loads)
    except Exception:  # parser raises a mix of JSON and value errors
        data = None
    if isinstance(data, dict):
        return data

    match = _OBJECT_RE.search(text)
    if match is None:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def parse_structured(text: str, schema: type[T]) -> T | None:
    """Extract a JSON object from ``text`` and validate it against ``schema``."""
    data = extract_json_object(text)
    if data is None:
        logger.debug("structured_extraction_no_json", schema=schema.__name__)
        return None
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        logger.debug(
            "structured_extraction_invalid",
            schema=schema.__name__,
            errors=exc.error_count(),
        )
        return None
