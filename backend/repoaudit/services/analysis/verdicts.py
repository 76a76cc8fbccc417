"""Turn untrusted classifier text into a Verdict or a parse error."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional, Union

from pydantic import ValidationError

from repoaudit.schemas.verdict import Verdict
from repoaudit.services.llm.client import loads_llm_json


@dataclass(frozen=True)
class VerdictParseError:
    reason: str


ParseOutcome = Union[Verdict, VerdictParseError]


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "verdict"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def parse_verdict(text: Optional[str], file_name: str) -> ParseOutcome:
    """Parse the model's response for ``file_name``.

    The unit path is authoritative, so whatever ``file_name`` the model echoed
    back is replaced before validation.
    """
    try:
        data = loads_llm_json(text)
    except (ValueError, json.JSONDecodeError) as e:
        return VerdictParseError(f"Invalid JSON response from AI: {e}")

    if not isinstance(data, dict):
        return VerdictParseError(f"Expected a JSON object, got {type(data).__name__}")

    data = {**data, "file_name": file_name}
    try:
        return Verdict.model_validate(data)
    except ValidationError as e:
        return VerdictParseError(f"Invalid verdict: {_describe(e)}")


def load_stored_verdict(raw: bytes) -> Verdict:
    """Strict re-read of a stored result; raises on anything malformed."""
    return Verdict.model_validate_json(raw)
