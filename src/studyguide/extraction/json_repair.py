"""Lenient JSON extraction with a single bounded repair retry."""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import re
from typing import Any, Callable


logger = logging.getLogger(__name__)

_CODE_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_VALID_ESCAPES = frozenset('"\\/bfnrt')
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")

# Top-level fields each schema tag must carry, with their JSON container type.
SCHEMA_REQUIRED_FIELDS: dict[str, dict[str, type]] = {
    "chunk_extract": {"slides": list},
    "derived_facts": {},
    "registry_rewrite": {"topics": list},
    "synthesis": {"high_yield_summary": list},
}


@dataclass(slots=True)
class JsonRepairError(ValueError):
    """Model output could not be turned into the expected JSON object."""

    label: str
    stage: str
    message: str

    @property
    def code(self) -> str:
        return f"{self.label}_JSON_{self.stage}_FAILED".upper()

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


def fix_invalid_escapes(text: str) -> str:
    """Turn invalid backslash escapes inside JSON strings into literal backslashes.

    ``\\q`` becomes ``\\\\q``; a backslash right before a string's final quote (no
    other quote follows in the text) is treated as a literal backslash so the quote
    still closes the string.
    """

    output: list[str] = []
    in_string = False
    index = 0
    length = len(text)

    while index < length:
        char = text[index]
        if not in_string:
            if char == '"':
                in_string = True
            output.append(char)
            index += 1
            continue

        if char == '"':
            in_string = False
            output.append(char)
            index += 1
            continue

        if char != "\\":
            output.append(char)
            index += 1
            continue

        following = text[index + 1] if index + 1 < length else ""
        if not following:
            output.append("\\\\")
            index += 1
        elif following == '"' and '"' not in text[index + 2 :]:
            output.append("\\\\")
            index += 1
        elif following == "u":
            digits = text[index + 2 : index + 6]
            if len(digits) == 4 and all(digit in _HEX_DIGITS for digit in digits):
                output.append(text[index : index + 6])
                index += 6
            else:
                output.append("\\\\")
                index += 1
        elif following in _VALID_ESCAPES:
            output.append(text[index : index + 2])
            index += 2
        else:
            output.append("\\\\")
            index += 1

    return "".join(output)


def extract_first_json_object(raw: str) -> str | None:
    """Return the first balanced ``{...}`` object, ignoring any trailing text."""

    start = raw.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(raw)):
        char = raw[index]
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
        elif char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0:
                return raw[start : index + 1]
    return None


def _remove_trailing_commas(text: str) -> str:
    output: list[str] = []
    in_string = False
    escaped = False
    length = len(text)

    for index, char in enumerate(text):
        if in_string:
            output.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == ",":
            cursor = index + 1
            while cursor < length and text[cursor].isspace():
                cursor += 1
            if cursor < length and text[cursor] in "}]":
                continue
        output.append(char)

    return "".join(output)


def repair_json_minimal(raw: str) -> str | None:
    """Apply local, call-free repairs and return a candidate JSON object text."""

    text = _CODE_FENCE_RE.sub("", raw or "")
    start = text.find("{")
    if start < 0:
        return None

    # Prose before the object never reaches the escape fixer.
    body = text[start:]
    candidate = extract_first_json_object(body)
    if candidate is None:
        # A dangling backslash before the closing quote hides the object's end.
        candidate = extract_first_json_object(fix_invalid_escapes(body))
    if candidate is None:
        return None
    return _remove_trailing_commas(fix_invalid_escapes(candidate))


def parse_json_object(raw: str, *, label: str) -> dict[str, Any]:
    """Parse a JSON object directly, falling back to minimal local repair."""

    text = (raw or "").strip()
    try:
        value = json.loads(text, strict=False)
    except json.JSONDecodeError:
        repaired = repair_json_minimal(text)
        if repaired is None:
            stage = "extract"
            message = "no complete JSON object in response" if "{" in text else "no JSON object in response"
            raise JsonRepairError(label=label, stage=stage, message=message) from None
        try:
            value = json.loads(repaired, strict=False)
        except json.JSONDecodeError as exc:
            raise JsonRepairError(label=label, stage="parse", message=str(exc)) from exc

    if not isinstance(value, dict):
        raise JsonRepairError(label=label, stage="schema", message="expected a top-level JSON object")
    return value


def validate_schema(value: dict[str, Any], schema_tag: str) -> dict[str, Any]:
    required = SCHEMA_REQUIRED_FIELDS.get(schema_tag)
    if required is None:
        raise ValueError(f"Unknown schema tag: {schema_tag}")

    for field_name, expected_type in required.items():
        if not isinstance(value.get(field_name), expected_type):
            raise JsonRepairError(
                label=schema_tag,
                stage="schema",
                message=f"missing or invalid field '{field_name}'",
            )
    return value


def parse_json_with_repair(raw: str, schema_tag: str, repair: Callable[[str], str]) -> dict[str, Any]:
    """Parse model output for ``schema_tag``, invoking ``repair`` at most once.

    Parameters
    ----------
    raw:
        Response text from the completion service.
    schema_tag:
        Key into :data:`SCHEMA_REQUIRED_FIELDS` naming the expected shape.
    repair:
        Callback receiving the failed text and returning a replacement response,
        typically a re-request asking the service to fix the JSON.

    Raises
    ------
    JsonRepairError
        When the repaired output still fails; chained to the first failure.
    """

    if schema_tag not in SCHEMA_REQUIRED_FIELDS:
        raise ValueError(f"Unknown schema tag: {schema_tag}")

    try:
        return validate_schema(parse_json_object(raw, label=schema_tag), schema_tag)
    except JsonRepairError as exc:
        first_failure = exc
        logger.warning("Invoking JSON repair for %s after %s", schema_tag, exc.code)

    repaired_raw = repair(raw)
    try:
        return validate_schema(parse_json_object(repaired_raw, label=schema_tag), schema_tag)
    except JsonRepairError as exc:
        raise exc from first_failure
