from __future__ import annotations

import json
import logging
import re
import unicodedata
from typing import Any, Literal

from pydantic import BaseModel, Field

from bemestar.domain.errors import MalformedAdvisoryResponse

logger = logging.getLogger("bemestar.advisory")

Priority = Literal["Alta", "Média", "Baixa"]

DEFAULT_PRIORITY: Priority = "Média"
DEFAULT_OWNER_HINT = "Sistema"

ACTION_KEY_PATHS: tuple[tuple[str, ...], ...] = (
    ("actions",),
    ("result", "actions"),
    ("output", "actions"),
    ("data", "actions"),
)

_MAX_UNWRAP_DEPTH = 3

_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*")
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")

_PRIORITY_ALIASES: dict[str, Priority] = {
    "alta": "Alta",
    "high": "Alta",
    "media": "Média",
    "medium": "Média",
    "baixa": "Baixa",
    "low": "Baixa",
}


class ActionItem(BaseModel):
    title: str = ""
    why: str = ""
    steps: list[str] = Field(default_factory=list)
    priority: Priority = DEFAULT_PRIORITY
    owner_hint: str = DEFAULT_OWNER_HINT


class AdvisoryDocument(BaseModel):
    """Schema the engine is asked to follow; responses are not trusted to match it."""

    actions: list[ActionItem] = Field(default_factory=list, max_length=5)


def advisory_json_schema() -> dict[str, Any]:
    return AdvisoryDocument.model_json_schema()


# -- document recovery ------------------------------------------------------------


def strip_noise(text: str) -> str:
    cleaned = text.replace("\ufeff", "")
    cleaned = _FENCE_RE.sub("", cleaned)
    return cleaned.strip()


def _loads(candidate: str) -> Any:
    try:
        return json.loads(candidate)
    except (ValueError, RecursionError):
        return None


def _balanced_end(text: str, start: int, opener: str, closer: str) -> int | None:
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return index
    return None


def extract_balanced(text: str) -> Any:
    """Parse the first balanced {...} span, falling back to [...]."""
    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        while start >= 0:
            end = _balanced_end(text, start, opener, closer)
            if end is None:
                break
            parsed = _loads(text[start : end + 1])
            if isinstance(parsed, (dict, list)):
                return parsed
            start = text.find(opener, start + 1)
    return None


def parse_document(raw: str, *, _depth: int = 0) -> dict[str, Any] | list[Any]:
    """Recover a JSON document from engine output or raise MalformedAdvisoryResponse."""
    if not isinstance(raw, str) or not raw.strip():
        raise MalformedAdvisoryResponse("empty response")

    cleaned = strip_noise(raw)
    direct = _loads(cleaned)
    if isinstance(direct, (dict, list)):
        return direct
    if isinstance(direct, str) and _depth < _MAX_UNWRAP_DEPTH:
        return parse_document(direct, _depth=_depth + 1)

    extracted = extract_balanced(cleaned)
    if extracted is not None:
        return extracted

    # Double-encoded payloads can carry fence markers inside the string itself.
    unwrapped = _loads(raw.strip())
    if isinstance(unwrapped, str) and _depth < _MAX_UNWRAP_DEPTH:
        extracted = extract_balanced(strip_noise(unwrapped))
        if extracted is not None:
            return extracted

    raise MalformedAdvisoryResponse("no JSON document found")


# -- field coercion -----------------------------------------------------------------


def _decode_nested(value: Any, depth: int = 0) -> Any:
    if isinstance(value, str) and depth < _MAX_UNWRAP_DEPTH:
        stripped = value.strip()
        if stripped[:1] in {"[", "{", '"'}:
            parsed = _loads(stripped)
            if parsed is not None:
                return _decode_nested(parsed, depth + 1)
    return value


def _lookup(document: Any, path: tuple[str, ...]) -> Any:
    current = document
    for key in path:
        current = _decode_nested(current)
        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return _decode_nested(current)


def locate_actions(document: Any) -> list[Any]:
    if isinstance(document, list):
        return document
    for path in ACTION_KEY_PATHS:
        found = _lookup(document, path)
        if isinstance(found, list):
            return found
    return []


def coerce_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def coerce_steps(value: Any, depth: int = 0) -> list[str]:
    value = _decode_nested(value)
    if value is None or depth > _MAX_UNWRAP_DEPTH:
        return []
    if isinstance(value, list):
        steps: list[str] = []
        for item in value:
            if isinstance(item, list):
                steps.extend(coerce_steps(item, depth + 1))
                continue
            if isinstance(item, dict):
                item = item.get("step") or item.get("text") or item.get("description")
            text = coerce_text(item)
            if text:
                steps.append(text)
        return steps
    if isinstance(value, str):
        lines = (_BULLET_RE.sub("", line).strip() for line in value.splitlines())
        return [line for line in lines if line]
    text = coerce_text(value)
    return [text] if text else []


def coerce_priority(value: Any) -> Priority:
    text = coerce_text(value)
    if not text:
        return DEFAULT_PRIORITY
    folded = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii").lower()
    return _PRIORITY_ALIASES.get(folded, DEFAULT_PRIORITY)


def coerce_action(raw: Any) -> ActionItem | None:
    raw = _decode_nested(raw)
    if not isinstance(raw, dict):
        return None
    return ActionItem(
        title=coerce_text(raw.get("title")),
        why=coerce_text(raw.get("why")),
        steps=coerce_steps(raw.get("steps")),
        priority=coerce_priority(raw.get("priority")),
        owner_hint=coerce_text(raw.get("owner_hint")) or DEFAULT_OWNER_HINT,
    )


def normalize_actions(raw_text: Any) -> list[ActionItem]:
    """Turn free-form engine output into action items; never raises."""
    try:
        document = parse_document(raw_text)
    except MalformedAdvisoryResponse as exc:
        length = len(raw_text) if isinstance(raw_text, str) else 0
        logger.warning("advisory.normalize malformed response_chars=%s reason=%s", length, exc)
        return []

    actions: list[ActionItem] = []
    for candidate in locate_actions(document):
        item = coerce_action(candidate)
        if item is not None:
            actions.append(item)
    return actions
