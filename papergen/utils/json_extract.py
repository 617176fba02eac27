"""
Defensive JSON extraction for untrusted model output

Each parser returns a ParseResult instead of raising, so callers can chain
them with first_success() and fall through to a deterministic fallback.
"""
import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterator, List, Optional, Tuple

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?")


@dataclass(frozen=True)
class ParseResult:
    """Outcome of one parse attempt: either a JSON object or an error message"""
    value: Optional[dict] = None
    error: Optional[str] = None
    parser: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None


Parser = Callable[[str], ParseResult]


def strip_code_fences(text: str) -> str:
    """Remove markdown code fence markers such as ```json ... ```"""
    return _FENCE_RE.sub("", text or "").strip()


def iter_balanced_objects(text: str) -> Iterator[Tuple[int, int]]:
    """
    Yield (start, end) spans of top-level balanced {...} objects.

    Braces inside JSON string literals are ignored.
    """
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"' and depth > 0:
            in_string = True
        elif char == "{":
            if depth == 0:
                start = index
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield start, index + 1


def _load_object(candidate: str, parser: str) -> ParseResult:
    try:
        value = json.loads(candidate)
    except (json.JSONDecodeError, TypeError) as e:
        return ParseResult(error=f"{parser}: {e}", parser=parser)
    if not isinstance(value, dict):
        return ParseResult(error=f"{parser}: expected a JSON object, got {type(value).__name__}", parser=parser)
    return ParseResult(value=value, parser=parser)


def parse_strict(text: str) -> ParseResult:
    """Parse the whole response (minus code fences) as one JSON object"""
    cleaned = strip_code_fences(text)
    if not cleaned:
        return ParseResult(error="strict: empty response", parser="strict")
    return _load_object(cleaned, "strict")


def parse_first_object(text: str) -> ParseResult:
    """Parse the first balanced {...} object found in the response"""
    cleaned = strip_code_fences(text)
    for start, end in iter_balanced_objects(cleaned):
        return _load_object(cleaned[start:end], "first_object")
    return ParseResult(error="first_object: no balanced object found", parser="first_object")


def parse_loose(text: str) -> ParseResult:
    """
    Try progressively looser brace-matched substrings.

    First the greedy span from the first '{' to the last '}', then every
    balanced object from largest to smallest.
    """
    cleaned = strip_code_fences(text)
    candidates: List[str] = []

    first, last = cleaned.find("{"), cleaned.rfind("}")
    if first != -1 and last > first:
        candidates.append(cleaned[first:last + 1])

    spans = sorted(iter_balanced_objects(cleaned), key=lambda span: span[1] - span[0], reverse=True)
    candidates.extend(cleaned[start:end] for start, end in spans)

    errors = []
    for candidate in candidates:
        result = _load_object(candidate, "loose")
        if result.ok:
            return result
        errors.append(result.error)

    if not errors:
        return ParseResult(error="loose: no brace-delimited span found", parser="loose")
    return ParseResult(error=errors[0], parser="loose")


def first_success(text: str, *parsers: Parser) -> ParseResult:
    """Run parsers in order and return the first successful result"""
    last = ParseResult(error="no parsers given")
    for parser in parsers:
        last = parser(text)
        if last.ok:
            return last
    return last


def coerce_int(value: Any, default: int = 0) -> int:
    """Best-effort int conversion for numbers the model returns as strings ("30%", "12.5")"""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        match = re.search(r"-?\d+(?:\.\d+)?", value)
        if match:
            return int(float(match.group(0)))
    return default


def coerce_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = re.search(r"-?\d+(?:\.\d+)?", value)
        if match:
            return float(match.group(0))
    return None
