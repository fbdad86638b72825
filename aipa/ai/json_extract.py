"""Pull JSON out of free-form model output. Never raises: garbage yields ``None``."""
import json
import re
from typing import Any, Iterator, List, Optional

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.I)


def _balanced_spans(text: str, open_ch: str, close_ch: str) -> Iterator[str]:
    """Balanced ``open_ch ... close_ch`` spans in order, ignoring brackets inside strings."""
    start = text.find(open_ch)
    while start != -1:
        depth = 0
        in_str = False
        escaped = False
        end = -1
        for i in range(start, len(text)):
            ch = text[i]
            if in_str:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_str = False
                continue
            if ch == '"':
                in_str = True
            elif ch == open_ch:
                depth += 1
            elif ch == close_ch:
                depth -= 1
                if depth == 0:
                    end = i
                    break
        if end != -1:
            yield text[start:end + 1]
            start = text.find(open_ch, end + 1)
        else:
            start = text.find(open_ch, start + 1)


def _loads(candidate: str) -> Any:
    try:
        return json.loads(candidate)
    except ValueError:
        # trailing commas are the most common slip
        try:
            return json.loads(re.sub(r",\s*([}\]])", r"\1", candidate))
        except ValueError:
            return None


def _candidates(text: str, open_ch: str, close_ch: str) -> Iterator[str]:
    for block in _FENCE_RE.findall(text):
        yield from _balanced_spans(block, open_ch, close_ch)
    yield from _balanced_spans(text, open_ch, close_ch)


def extract_json_array(text: Optional[str]) -> Optional[List[Any]]:
    if not text:
        return None
    for candidate in _candidates(text, "[", "]"):
        value = _loads(candidate)
        if isinstance(value, list):
            return value
    return None


def extract_json_object(text: Optional[str]) -> Optional[dict]:
    if not text:
        return None
    for candidate in _candidates(text, "{", "}"):
        value = _loads(candidate)
        if isinstance(value, dict):
            return value
    return None
