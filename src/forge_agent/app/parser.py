"""Tolerant extraction of structured plans from raw model output.

Models often wrap the JSON payload in markdown fences and chatty prose. The
parser strips fences, slices the outermost `{...}` span and validates it into a
pydantic wrapper. It never raises: callers branch on `Parsed` vs `ParseError`.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel, ValidationError

TPlan = TypeVar("TPlan", bound=BaseModel)

_FENCE_RE = re.compile(r"```[A-Za-z0-9_+-]*")


@dataclass(frozen=True)
class Parsed(Generic[TPlan]):
    plan: TPlan


@dataclass(frozen=True)
class ParseError:
    reason: str
    payload: str


def extract_json(raw: str | None) -> str:
    """Return the best-guess JSON object text inside `raw`."""
    if not raw:
        return ""
    text = _FENCE_RE.sub("", raw).strip()
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        text = text[start : end + 1]
    return text


def parse_plan(raw: str | None, plan_model: type[TPlan]) -> Parsed[TPlan] | ParseError:
    payload = extract_json(raw)
    if not payload:
        return ParseError(reason="empty response", payload="")
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        return ParseError(reason=f"invalid JSON: {exc.msg} at position {exc.pos}", payload=payload)
    except RecursionError:
        return ParseError(reason="invalid JSON: nesting too deep", payload=payload)
    try:
        plan = plan_model.model_validate(data)
    except ValidationError as exc:
        return ParseError(reason=_summarize_validation_error(exc), payload=payload)
    return Parsed(plan=plan)


def _summarize_validation_error(exc: ValidationError) -> str:
    issues = []
    for item in exc.errors()[:3]:
        location = ".".join(str(part) for part in item.get("loc", ()))
        issues.append(f"{location or '<root>'}: {item.get('msg', 'invalid')}")
    return "schema mismatch: " + "; ".join(issues)
