"""Recovering structured data from raw model output.

Models wrap JSON in markdown fences and some backends leak ``<think>``
reasoning into the completion. Cleaning runs two passes (fences, then
reasoning tags) until neither changes the text, then a strict JSON parse with
a light repair fallback. Agents read fields through ``ResponseReader`` so a
missing or null field falls back to a default instead of failing.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from .errors import MalformedResponseError

logger = logging.getLogger(__name__)

EMPTY_OBJECT = "{}"

# ---------------------------------------------------------------------------
# Cleaning passes
# ---------------------------------------------------------------------------

_FENCE_OPEN_RE = re.compile(r"^```[\w.+-]*[ \t]*(?:\r?\n|$)")
_FENCE_CLOSE_RE = re.compile(r"\r?\n?```\s*$")

_THINK_PAIR_RE = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_THINK_OPEN_RE = re.compile(r"<think>", re.IGNORECASE)
_THINK_CLOSE_RE = re.compile(r"</think>", re.IGNORECASE)
# A line that opens structured data ends an unterminated reasoning block.
_DATA_LINE_RE = re.compile(r"^[ \t]*[{\[]", re.MULTILINE)


def strip_fences(text: str) -> str:
    """Remove an opening ```lang fence line and a trailing closing fence."""
    txt = text.strip()
    if not txt.startswith("```"):
        return text
    txt = _FENCE_OPEN_RE.sub("", txt, count=1)
    if txt == text.strip():
        # "```" with no newline or language tag match
        txt = txt[3:]
    txt = _FENCE_CLOSE_RE.sub("", txt, count=1)
    return txt.strip()


def strip_reasoning(text: str) -> str:
    """Remove ``<think>`` blocks and any orphaned ``<think>``/``</think>`` tag.

    Paired blocks go first (non-greedy, so ``a < b`` inside a block is just
    text). An orphan close tag loses only the tag. An orphan open tag takes
    everything up to the next line that starts with ``{`` or ``[``, or to the
    end of the text when no such line follows.
    """
    if not (_THINK_OPEN_RE.search(text) or _THINK_CLOSE_RE.search(text)):
        return text

    txt = _THINK_PAIR_RE.sub("", text)
    txt = _THINK_CLOSE_RE.sub("", txt)

    match = _THINK_OPEN_RE.search(txt)
    while match:
        data = _DATA_LINE_RE.search(txt, match.end())
        if data:
            txt = txt[:match.start()] + txt[data.start():]
        else:
            txt = txt[:match.start()]
        match = _THINK_OPEN_RE.search(txt)

    return txt.strip()


def strip_wrappers(text: str) -> str:
    """Apply fence then reasoning stripping until the text stops changing."""
    current = text
    while True:
        cleaned = strip_reasoning(strip_fences(current))
        if cleaned == current:
            return cleaned
        current = cleaned


def clean_response(raw: str | None) -> str:
    """Clean a raw completion; empty input becomes the ``"{}"`` sentinel."""
    if raw is None or not raw.strip():
        return EMPTY_OBJECT
    return strip_wrappers(raw)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _attempt_repair(raw: str) -> str | None:
    """Lightweight repair for common LLM JSON mistakes."""
    txt = raw.strip()
    if not txt:
        return None
    if "{" in txt and "}" in txt:
        txt = txt[txt.find("{"):txt.rfind("}") + 1]
    # Curly/smart quotes
    txt = txt.replace("“", '"').replace("”", '"').replace("‘", "'").replace("’", "'")
    # Trailing commas before a closing bracket
    txt = re.sub(r",\s*([}\]])", r"\1", txt)
    txt = re.sub(r'\\(?!["\\/bfnrtu])', r'\\\\', txt)
    return txt


def parse_response(raw: str | None) -> ResponseReader:
    """Clean *raw* and parse it as a JSON object.

    Raises ``MalformedResponseError`` when nothing object-shaped can be
    recovered.
    """
    cleaned = clean_response(raw)
    if not cleaned.strip():
        raise MalformedResponseError("response contained only reasoning, no content", raw)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        repaired = _attempt_repair(cleaned)
        if repaired is None:
            raise MalformedResponseError(f"response is not JSON: {e}", raw) from e
        try:
            data = json.loads(repaired)
        except json.JSONDecodeError as e2:
            raise MalformedResponseError(f"response is not JSON: {e2}", raw) from e2
        logger.debug("Recovered JSON after light repair")

    if not isinstance(data, dict):
        raise MalformedResponseError(
            f"expected a JSON object, got {type(data).__name__}", raw,
        )
    return ResponseReader(data)


# ---------------------------------------------------------------------------
# Field reader
# ---------------------------------------------------------------------------

def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(p[:1].upper() + p[1:] for p in rest)


class ResponseReader:
    """Typed, forgiving access to a parsed JSON object.

    Keys are looked up as given and then in camelCase, since models trained on
    other schemas answer ``keyFacts`` as often as ``key_facts``.
    """

    def __init__(self, data: dict[str, Any]):
        self.data = data

    def _lookup(self, key: str) -> Any:
        if key in self.data:
            return self.data[key]
        return self.data.get(_camel(key))

    def has(self, key: str) -> bool:
        return self._lookup(key) is not None

    def has_required(self, *keys: str) -> bool:
        """True when every key is present, non-null and not a blank string."""
        for key in keys:
            value = self._lookup(key)
            if value is None:
                return False
            if isinstance(value, str) and not value.strip():
                return False
        return True

    def get_str(self, key: str, default: str = "") -> str:
        value = self._lookup(key)
        if value is None:
            return default
        if isinstance(value, str):
            return value
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return str(value)

    def get_int(self, key: str, default: int = 0) -> int:
        value = self._lookup(key)
        if value is None or isinstance(value, bool):
            return default
        try:
            return int(float(value)) if isinstance(value, str) else int(value)
        except (TypeError, ValueError, OverflowError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        value = self._lookup(key)
        if value is None or isinstance(value, bool):
            return default
        try:
            return float(value)
        except (TypeError, ValueError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._lookup(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in ("true", "yes", "1"):
                return True
            if lowered in ("false", "no", "0"):
                return False
            return default
        if isinstance(value, (int, float)):
            return bool(value)
        return default

    def get_list(self, key: str) -> list[Any]:
        value = self._lookup(key)
        return list(value) if isinstance(value, list) else []

    def get_str_list(self, key: str) -> list[str]:
        """List of non-blank strings; a bare string becomes a one-item list."""
        value = self._lookup(key)
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        if not isinstance(value, list):
            return []
        items = []
        for item in value:
            if item is None:
                continue
            if isinstance(item, (dict, list)):
                text = json.dumps(item)
            else:
                text = str(item)
            if text.strip():
                items.append(text)
        return items

    def get_str_map(self, key: str) -> dict[str, str]:
        value = self._lookup(key)
        if not isinstance(value, dict):
            return {}
        return {str(k): str(v) for k, v in value.items() if v is not None}

    def get_object(self, key: str) -> ResponseReader | None:
        value = self._lookup(key)
        if isinstance(value, dict):
            return ResponseReader(value)
        return None

    def get_objects(self, key: str) -> list[ResponseReader]:
        """Nested objects of an array field; non-object items are skipped."""
        value = self._lookup(key)
        if not isinstance(value, list):
            return []
        return [ResponseReader(item) for item in value if isinstance(item, dict)]

    def __repr__(self) -> str:
        return f"ResponseReader(keys={sorted(self.data)})"
