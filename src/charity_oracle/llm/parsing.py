"""Recover JSON objects from model output.

Models asked for JSON sometimes wrap it in a markdown fence or surround it
with prose. Parsing tries, in order: the whole text, a fenced ```json block,
then the outermost ``{...}`` span.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Dict

from charity_oracle.errors import MalformedResponseError

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_BRACED = re.compile(r"\{[\s\S]*\}")


def _loads_object(text: str) -> Dict[str, Any]:
    value = json.loads(text)
    if not isinstance(value, dict):
        raise ValueError(f"expected a JSON object, got {type(value).__name__}")
    return value


def extract_json_object(text: str) -> Dict[str, Any]:
    """Return the JSON object embedded in ``text``.

    Raises:
        MalformedResponseError: if no candidate parses to a JSON object
    """
    if not text or not text.strip():
        raise MalformedResponseError("empty response", raw=text)

    candidates = [text.strip()]
    fenced = _FENCED_JSON.search(text)
    if fenced:
        candidates.append(fenced.group(1))
    braced = _BRACED.search(text)
    if braced:
        candidates.append(braced.group(0))

    for candidate in candidates:
        try:
            return _loads_object(candidate)
        except ValueError:
            continue

    raise MalformedResponseError("no JSON object found in response", raw=text[:500])


def coerce_score(value: Any) -> float:
    """Clamp a model-supplied score into 0..100.

    The value is not rounded here; aggregation rounds once, at the end.

    Raises:
        MalformedResponseError: if the value is not a finite number
    """
    if isinstance(value, bool):
        raise MalformedResponseError(f"score must be numeric, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise MalformedResponseError(f"score must be numeric, got {value!r}")
    if not math.isfinite(number):
        raise MalformedResponseError(f"score must be finite, got {value!r}")
    return max(0.0, min(100.0, number))
