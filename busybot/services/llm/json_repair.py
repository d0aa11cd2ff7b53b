"""Best-effort cleanup of model output that should have been plain text or JSON."""

import json
import re
from typing import Any, Optional

from busybot.services.llm.base import LLMError, LLMErrorKind

CODE_FENCE_PATTERN = re.compile(r"```[a-zA-Z]*\s*")
TRAILING_COMMA_PATTERN = re.compile(r",\s*([}\]])")
SURROUNDING_QUOTES_PATTERN = re.compile(r"^[\"'`]+|[\"'`]+$")


def strip_code_fences(text: str) -> str:
    if not text:
        return ""
    return CODE_FENCE_PATTERN.sub("", text).replace("```", "").strip()


def repair_json(text: str) -> str:
    """Fix the malformations models produce most often (trailing commas)."""
    return TRAILING_COMMA_PATTERN.sub(r"\1", text)


def extract_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` substring, ignoring braces inside strings."""
    start = text.find("{")
    if start < 0:
        return None

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
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def parse_json_output(text: str) -> Any:
    """Parse model JSON output with one repair-and-extract attempt. Raises LLMError(malformed_output)."""
    cleaned = strip_code_fences(text)
    try:
        return json.loads(repair_json(cleaned))
    except json.JSONDecodeError:
        pass

    candidate = extract_json_object(cleaned)
    if candidate is None:
        raise LLMError(LLMErrorKind.MALFORMED_OUTPUT, "No JSON object found in model output")
    try:
        return json.loads(repair_json(candidate))
    except json.JSONDecodeError as exc:
        raise LLMError(LLMErrorKind.MALFORMED_OUTPUT, f"Unparseable JSON in model output: {exc}") from exc


def clean_text_output(text: str) -> str:
    """Strip code fences and the quotes/backticks models like to wrap replies in."""
    cleaned = strip_code_fences(text).strip()
    return SURROUNDING_QUOTES_PATTERN.sub("", cleaned).strip()
