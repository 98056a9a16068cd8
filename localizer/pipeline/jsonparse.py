"""
Tolerant JSON extraction from free-form model responses.

Model replies often wrap the requested JSON in prose or code fences, use
typographic quotes, or leave trailing commas. `extract_json` finds the first
balanced bracket structure that parses and reports failure as a value
instead of raising.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Optional

_SMART_DOUBLE = re.compile("[\u201C\u201D\u201E\u201F\u2033]")
_SMART_SINGLE = re.compile("[\u2018\u2019\u201A\u201B\u2032]")
_TRAILING_COMMA = re.compile(r',\s*([}\]])')

_CLOSERS = {'{': '}', '[': ']'}

# Bound the number of candidate structures tried on long, noisy replies
MAX_CANDIDATES = 20


@dataclass
class ParseResult:
    ok: bool
    value: Any = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: Any) -> 'ParseResult':
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> 'ParseResult':
        return cls(ok=False, error=error)


def normalize_json_text(text: str) -> str:
    """Replace typographic quotes with ASCII ones"""
    text = _SMART_DOUBLE.sub('"', text)
    return _SMART_SINGLE.sub("'", text)


def strip_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA.sub(r'\1', text)


def find_balanced(text: str, start: int) -> Optional[int]:
    """Return the index of the bracket closing the one at `start`, if any"""
    stack = []
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in ('}', ']'):
            if not stack or stack.pop() != ch:
                return None
            if not stack:
                return i
    return None


def extract_json(text: Optional[str], expect: Optional[type] = None) -> ParseResult:
    """
    Extract the first parseable JSON structure from `text`.

    Args:
        text: Raw model output
        expect: `list` or `dict` to only accept arrays or objects

    Returns:
        ParseResult with the decoded value, or the reason nothing was found
    """
    if not text or not text.strip():
        return ParseResult.failure("empty response")

    if expect is list:
        openers = '['
    elif expect is dict:
        openers = '{'
    else:
        openers = '[{'

    last_error = "no JSON structure found"
    tried = 0
    pos = 0
    while tried < MAX_CANDIDATES:
        starts = [i for i in (text.find(o, pos) for o in openers) if i != -1]
        if not starts:
            break
        start = min(starts)
        tried += 1

        end = find_balanced(text, start)
        if end is None:
            last_error = f"unbalanced structure at offset {start}"
            pos = start + 1
            continue

        raw = strip_trailing_commas(text[start:end + 1])
        # Typographic quotes are legitimate inside translated strings, so they
        # are only rewritten when the untouched candidate does not parse.
        for candidate in (raw, normalize_json_text(raw)):
            try:
                return ParseResult.success(json.loads(candidate))
            except json.JSONDecodeError as e:
                last_error = f"invalid JSON at offset {start}: {e.msg}"
        pos = start + 1

    return ParseResult.failure(last_error)
