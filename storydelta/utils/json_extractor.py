"""
Story delta operation extraction from raw model output.

The model is an untrusted oracle: its reply may wrap the JSON in a fenced
block, surround it with prose, or fill fields with the wrong types. This
module locates the payload, validates every field independently and
returns a deterministically ordered list of ``StoryDeltaOperation``.
"""
import json
import logging
import math
import re
from typing import Any, List, Optional

from storydelta.errors import OperationParseError
from storydelta.schemas import StoryDeltaOperation
from storydelta.utils.text_utils import unique_strings
from storydelta.utils.wiki_format import derive_wiki_title_from_page_key, sanitize_wiki_title

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.5

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)


def extract_json_payload(raw: str) -> Any:
    """
    Parse the JSON object embedded in *raw*.

    Strategy:
        1. Use the first ``\\`\\`\\`json ... \\`\\`\\``` fenced block when present.
        2. Take the span from the first ``{`` to the last ``}`` of that text.

    Raises ``OperationParseError`` when no object is found or it does not parse.
    """
    fenced = _FENCED_JSON.search(raw)
    candidate = fenced.group(1) if fenced else raw

    start = candidate.find("{")
    end = candidate.rfind("}")
    if start < 0 or end <= start:
        logger.warning(
            "json_extract_failed | strategy=none_matched | text_len=%d | tail=%.200s",
            len(raw), raw[-200:],
        )
        raise OperationParseError("Response did not contain a JSON object.")

    try:
        return json.loads(candidate[start:end + 1])
    except json.JSONDecodeError as exc:
        logger.warning(
            "json_extract_failed | strategy=parse_error | error=%s | raw_head=%.500s",
            exc, candidate[start:start + 500],
        )
        raise OperationParseError(f"Invalid JSON in model response: {exc}") from exc


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------

def _as_string(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _as_string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return unique_strings(item for item in value if isinstance(item, str))


def _as_confidence(value: Any) -> float:
    # bool is an int subclass; "true" is not a confidence.
    if value is None or isinstance(value, bool):
        return DEFAULT_CONFIDENCE
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if not math.isfinite(number):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, number))


def _coerce_operation(item: Any) -> Optional[StoryDeltaOperation]:
    if not isinstance(item, dict):
        return None

    page_key = _as_string(item.get("pageKey"))
    title = _as_string(item.get("title"))
    resolved_key = page_key or title
    if not resolved_key:
        return None

    return StoryDeltaOperation(
        page_key=resolved_key,
        title=sanitize_wiki_title(title, derive_wiki_title_from_page_key(resolved_key)),
        summary=_as_string(item.get("summary")),
        keywords=_as_string_list(item.get("keywords")),
        aliases=_as_string_list(item.get("aliases")),
        content=_as_string(item.get("content")),
        confidence=_as_confidence(item.get("confidence")),
        rationale=_as_string(item.get("rationale")),
    )


def parse_story_delta_operations(raw: str, max_operations_per_chunk: int) -> List[StoryDeltaOperation]:
    """
    Validate model output into at most ``max_operations_per_chunk`` operations.

    Malformed fields are dropped individually; an element without both
    ``pageKey`` and ``title`` is skipped. The result is sorted by
    ``(page_key, title, summary, content)`` before truncation so the same
    reply always yields the same operations.
    """
    payload = extract_json_payload(raw)
    if not isinstance(payload, dict):
        raise OperationParseError("Story delta payload is not an object.")

    operations_raw = payload.get("operations")
    if not isinstance(operations_raw, list):
        raise OperationParseError("Story delta payload missing operations array.")

    operations = [op for op in map(_coerce_operation, operations_raw) if op is not None]
    skipped = len(operations_raw) - len(operations)
    if skipped:
        logger.info("operations_skipped | count=%d | reason=missing_identity_or_not_object", skipped)

    operations.sort(key=StoryDeltaOperation.sort_key)
    return operations[:max(1, int(max_operations_per_chunk))]
