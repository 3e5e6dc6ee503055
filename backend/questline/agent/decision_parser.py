from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Union

_TARGET_KEYS = ("targetId", "target_id", "target")
_REASONING_KEYS = ("reasoning", "reason", "explanation")

_KEYWORD_TARGET = re.compile(
    r"(?:target|choose|select|vote\s+for|kill|investigate|protect)[:\s]+[\"']?([A-Za-z0-9_\-]+)",
    flags=re.IGNORECASE,
)
_NOT_AN_ID = {"a", "an", "the", "to", "is", "player", "for", "me", "id", "null", "none", "nobody", "no"}


@dataclass(frozen=True, slots=True)
class StructuredDecision:
    target_id: Optional[str]
    reasoning: str

    kind = "structured"


@dataclass(frozen=True, slots=True)
class HeuristicDecision:
    target_id: str
    reasoning: str = "Extracted from unstructured AI response"

    kind = "heuristic"


@dataclass(frozen=True, slots=True)
class Unparseable:
    raw: str
    reason: str = "no decision found in response"

    kind = "unparseable"


ParseResult = Union[StructuredDecision, HeuristicDecision, Unparseable]


def _json_candidate(text: str) -> Optional[str]:
    fence = text.find("```")
    if fence >= 0:
        start = fence + 3
        if text[start : start + 4].lower() == "json":
            start += 4
        end = text.find("```", start)
        if end > start:
            return text[start:end].strip()
    brace_start = text.find("{")
    brace_end = text.rfind("}")
    if brace_start >= 0 and brace_end > brace_start:
        return text[brace_start : brace_end + 1]
    return None


def _load_object(text: str) -> Optional[Dict[str, Any]]:
    candidate = _json_candidate(text)
    if candidate is None:
        return None
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        brace_start = candidate.find("{")
        brace_end = candidate.rfind("}")
        if brace_start < 0 or brace_end <= brace_start:
            return None
        try:
            data = json.loads(candidate[brace_start : brace_end + 1])
        except json.JSONDecodeError:
            return None
    return data if isinstance(data, dict) else None


def _coerce_target(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    if not cleaned or cleaned.lower() in {"null", "none"}:
        return None
    return cleaned


def parse_decision(raw: str) -> ParseResult:
    """JSON object first, then a keyword heuristic; anything else is unparseable."""
    text = (raw or "").strip()
    if not text:
        return Unparseable(raw=raw or "", reason="empty response")

    data = _load_object(text)
    if data is not None:
        target = None
        for key in _TARGET_KEYS:
            if key in data:
                target = _coerce_target(data[key])
                break
        reasoning = "No reasoning provided"
        for key in _REASONING_KEYS:
            if data.get(key) is not None:
                reasoning = str(data[key])
                break
        return StructuredDecision(target_id=target, reasoning=reasoning)

    for match in _KEYWORD_TARGET.finditer(text):
        token = match.group(1)
        if token.lower() not in _NOT_AN_ID:
            return HeuristicDecision(target_id=token)

    return Unparseable(raw=text)


def validate_target(target_id: Optional[str], legal_ids: Iterable[str]) -> Optional[str]:
    if target_id is None:
        return None
    return target_id if target_id in set(legal_ids) else None
