"""
LLM Plan Response Repair & Validation

Turns raw model text into a validated plan payload, recovering from the
usual LLM output defects. Attempts, in order, stopping at the first success:

1. Strip Markdown code fences and extract the first balanced JSON object
   (trailing prose dropped). An object that never closes is kept to the end
   of the text and flagged as truncated.
2. Parse and validate.
3. Truncated text: close the open string and open containers (innermost
   first), then parse and validate.
4. Otherwise: generic repairs (whole-object escaped quotes, raw control
   characters inside strings, trailing commas), then parse and validate.

`groceryList` is the one field we are lenient about: a missing value, a
non-list, or a list of plain strings becomes [].

Completion only guarantees the text parses. A truncated plan usually still
fails validation (too few days); callers use `truncated` on the raised
error to decide on a fallback generation.
"""
import json
import logging
import re
from typing import List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from services.plan_payloads import MealPlanPayload

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=BaseModel)

MAX_REPORTED_ISSUES = 5
_LITERALS = ("true", "false", "null")
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_TRAILING_CLOSER = re.compile(r"\s*[}\]]")


class PlanResponseError(Exception):
    """Model output could not be turned into a valid payload."""

    def __init__(self, message: str, truncated: bool = False):
        super().__init__(message)
        self.message = message
        self.truncated = truncated


class PlanParseError(PlanResponseError):
    pass


class PlanValidationError(PlanResponseError):
    pass


# ============ Extraction ============

def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence if present."""
    stripped = text.strip()
    if stripped.startswith("```"):
        first_newline = stripped.find("\n")
        stripped = stripped[first_newline + 1:] if first_newline != -1 else stripped[3:]
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


def _scan(text: str) -> Tuple[List[str], bool, bool, Optional[int]]:
    """
    Walk the text tracking JSON nesting outside strings.

    Returns (open container stack, inside string, pending escape, index where
    the outermost object closed or None).
    """
    stack: List[str] = []
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]":
            if stack:
                stack.pop()
            if not stack:
                return stack, False, False, i
    return stack, in_string, escaped, None


def extract_json_object(text: str) -> Optional[str]:
    """
    Substring from the first "{" to its matching "}".

    Returns the remainder of the text when the object never closes, and None
    when there is no "{" at all.
    """
    start = text.find("{")
    if start == -1:
        return None
    candidate = text[start:]
    _, _, _, end = _scan(candidate)
    if end is None:
        return candidate.rstrip()
    return candidate[:end + 1]


def is_balanced(text: str) -> bool:
    stack, in_string, _, end = _scan(text)
    return end is not None and not stack and not in_string


def response_looks_truncated(raw: Optional[str]) -> bool:
    """True when the first JSON object in raw never closes."""
    if not raw:
        return False
    text = extract_json_object(strip_code_fences(raw))
    return text is not None and not is_balanced(text)


# ============ Completion ============

def _last_string_is_key(text: str) -> bool:
    """True when text ends with a string that sits in key position."""
    if not text.endswith('"'):
        return False
    i = len(text) - 2
    while i >= 0:
        if text[i] == '"':
            backslashes = 0
            j = i - 1
            while j >= 0 and text[j] == "\\":
                backslashes += 1
                j -= 1
            if backslashes % 2 == 0:
                break
        i -= 1
    before = text[:max(i, 0)].rstrip()
    return before.endswith(("{", ","))


def complete_json(text: str) -> str:
    """
    Close whatever a truncated JSON text left open.

    Idempotent on text that is already balanced.
    """
    stack: List[str] = []
    in_string = False
    escaped = False
    # Start of a \uXXXX escape still missing hex digits
    unicode_start: Optional[int] = None
    for i, ch in enumerate(text):
        if in_string:
            if unicode_start is not None:
                if ch in _HEX_DIGITS and i - unicode_start < 6:
                    if i - unicode_start == 5:
                        unicode_start = None
                    continue
                unicode_start = None
            if escaped:
                escaped = False
                if ch == "u":
                    unicode_start = i - 1
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]" and stack:
            stack.pop()

    if not stack and not in_string:
        return text

    out = text
    if in_string:
        if escaped:
            out = out[:-1]
        elif unicode_start is not None:
            out = out[:unicode_start]
        out += '"'

    out = out.rstrip()
    # Partial literal or number at the cut
    partial = re.search(r"[A-Za-z]+$", out)
    if partial and partial.group() not in _LITERALS:
        out = out[:partial.start()].rstrip()
    dangling = re.search(r"[-+.eE]+$", out)
    # "e" closing a literal like true is not part of a number
    if dangling and not out[dangling.start() - 1:dangling.start()].isalpha():
        out = out[:dangling.start()].rstrip()

    if out.endswith(","):
        out = out[:-1]
    elif out.endswith(":"):
        out += " null"
    elif stack and stack[-1] == "{" and _last_string_is_key(out):
        out += ": null"

    closers = "".join("}" if opener == "{" else "]" for opener in reversed(stack))
    return out + closers


# ============ Generic repairs ============

def repair_json_text(text: str) -> str:
    """
    Fix common non-truncation defects.

    - a whole object emitted with escaped quotes ({\\"a\\": 1})
    - raw newlines/tabs inside strings
    - trailing commas before } or ]
    """
    if '\\"' in text and re.search(r'(?<!\\)"', text) is None:
        text = text.replace('\\"', '"')

    out: List[str] = []
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            elif ch == "\n":
                out.append("\\n")
                continue
            elif ch == "\r":
                out.append("\\r")
                continue
            elif ch == "\t":
                out.append("\\t")
                continue
            out.append(ch)
            continue

        if ch == '"':
            in_string = True
        elif ch == "," and _TRAILING_CLOSER.match(text, i + 1):
            continue
        out.append(ch)
    return "".join(out)


def coerce_grocery_list(data: dict) -> None:
    """Replace an unusable groceryList with [] in place."""
    value = data.get("groceryList")
    if not isinstance(value, list) or any(isinstance(item, str) for item in value):
        data["groceryList"] = []


def format_validation_error(exc: PydanticValidationError) -> str:
    issues = []
    for err in exc.errors()[:MAX_REPORTED_ISSUES]:
        path = ".".join(str(part) for part in err["loc"]) or "(root)"
        issues.append(f"{path}: {err['msg']}")
    return "Validation failed: " + ", ".join(issues)


# ============ Pipeline ============

def _is_end_of_input(err: json.JSONDecodeError, text: str) -> bool:
    return err.pos >= len(text.rstrip()) - 1 or err.msg.startswith("Unterminated string")


def parse_plan_response(raw: Optional[str], payload_cls: Type[P]) -> P:
    """
    Repair, parse and validate a raw model response.

    Raises:
        PlanParseError: no attempt produced a JSON object
        PlanValidationError: JSON parsed but never matched payload_cls
    """
    if not raw or not raw.strip():
        raise PlanParseError("JSON parse error: empty model response")

    text = extract_json_object(strip_code_fences(raw))
    if text is None:
        raise PlanParseError("JSON parse error: no JSON object found in model response")

    truncated = not is_balanced(text)
    if truncated:
        logger.warning(f"Model response looks truncated ({len(raw)} chars), completing JSON")
        candidates = [complete_json(text), complete_json(repair_json_text(text))]
    else:
        candidates = [text, repair_json_text(text)]

    parse_error: Optional[json.JSONDecodeError] = None
    validation_error: Optional[PydanticValidationError] = None
    tried = set()

    for candidate in candidates:
        if candidate in tried:
            continue
        tried.add(candidate)

        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as e:
            parse_error = e
            if _is_end_of_input(e, candidate):
                truncated = True
            continue

        if not isinstance(data, dict):
            continue

        if payload_cls is MealPlanPayload:
            coerce_grocery_list(data)

        try:
            return payload_cls.model_validate(data)
        except PydanticValidationError as e:
            validation_error = e

    if validation_error is not None:
        raise PlanValidationError(format_validation_error(validation_error), truncated=truncated)
    if parse_error is not None:
        raise PlanParseError(f"JSON parse error: {parse_error.msg} at position {parse_error.pos}", truncated=truncated)
    raise PlanParseError("JSON parse error: response is not a JSON object", truncated=truncated)
