"""Strict parsing of a finished model response."""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import ValidationError

from schemas.analysis import AnalysisResult
from services.analysis.exceptions import MalformedOutputError


_CODE_FENCE = re.compile(r"^\s*```[A-Za-z]*[ \t]*\n?(?P<body>.*?)\n?[ \t]*```\s*$", re.DOTALL)


def strip_code_fence(text: str) -> str:
    """Return the body of a Markdown code block, or the stripped text."""
    match = _CODE_FENCE.match(text)
    if match:
        return match.group("body").strip()
    return text.strip()


def parse_complete(text: str) -> dict[str, Any]:
    """Parse the full response into the analysis dict.

    The returned dict is exactly what `json.loads` produced; validation only
    decides whether it is acceptable.

    Raises:
        MalformedOutputError: Empty output, invalid JSON, a non-object, or an
            object lacking the required analysis fields.
    """
    body = strip_code_fence(text)
    if not body:
        raise MalformedOutputError("Model returned an empty response")

    try:
        document = json.loads(body)
    except json.JSONDecodeError as exc:
        raise MalformedOutputError(
            f"Model output is not valid JSON (line {exc.lineno}, column {exc.colno})"
        ) from exc

    if not isinstance(document, dict):
        raise MalformedOutputError("Model output is not a JSON object")

    try:
        AnalysisResult.model_validate(document)
    except ValidationError as exc:
        raise MalformedOutputError(
            f"Model output does not match the analysis schema "
            f"({exc.error_count()} problems)"
        ) from exc
    return document
