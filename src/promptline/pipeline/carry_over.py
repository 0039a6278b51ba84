"""
Variable carry-over between pipeline steps.

Step outputs are free-form text that may embed JSON objects and may contain
``key: value`` / ``key = value`` lines. Both are collected in one pass; the
result is advisory and callers decide whether to merge it.

JSON objects are taken verbatim. Line scanning is heuristic, so a line pair
is only trusted when it passes ``CarryOverPolicy``:

- keys are identifiers that open a line;
- values are non-empty and at most ``max_value_length`` characters;
- lines that end with ``:`` are section headers and yield nothing.

``denied_keys`` never pass and ``allowed_keys``, when set, is a whitelist.
These two apply to every source.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any

KEY_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
LINE_PATTERN = re.compile(r"^[ \t]*([A-Za-z_][A-Za-z0-9_]*)[ \t]*[:=][ \t]*(.+?)[ \t]*$", re.MULTILINE)
QUOTES = ('"', "'")

_decoder = json.JSONDecoder()


@dataclass(frozen=True)
class CarryOverPolicy:
    max_value_length: int = 500
    allowed_keys: frozenset[str] | None = None
    denied_keys: frozenset[str] = field(default_factory=frozenset)

    def permits(self, key: str) -> bool:
        if key in self.denied_keys:
            return False
        return self.allowed_keys is None or key in self.allowed_keys

    def accepts_key(self, key: str) -> bool:
        return bool(KEY_PATTERN.match(key)) and self.permits(key)

    def accepts_value(self, value: Any) -> bool:
        if value is None:
            return False
        if isinstance(value, str):
            return 0 < len(value) <= self.max_value_length
        return True


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in QUOTES:
        return value[1:-1]
    return value


def _json_objects(text: str) -> list[dict[str, Any]]:
    """Top-level JSON objects in ``text``: the whole text, or embedded ``{...}`` blocks."""
    stripped = text.strip()
    try:
        whole = json.loads(stripped)
    except ValueError:
        whole = None
    if isinstance(whole, dict):
        return [whole]

    objects = []
    index = text.find("{")
    while index != -1:
        try:
            value, end = _decoder.raw_decode(text, index)
        except ValueError:
            index = text.find("{", index + 1)
            continue
        if isinstance(value, dict):
            objects.append(value)
        index = text.find("{", end)
    return objects


def _line_pairs(text: str, policy: CarryOverPolicy) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for match in LINE_PATTERN.finditer(text):
        value = match.group(2).strip()
        if value.endswith(":"):
            continue
        key = match.group(1)
        value = _strip_quotes(value).strip()
        if policy.accepts_key(key) and policy.accepts_value(value):
            pairs[key] = value
    return pairs


def extract_variables_from_output(
    output: Any, policy: CarryOverPolicy | None = None
) -> dict[str, Any]:
    """
    Extract carry-over candidates from a step's raw output.

    Dict outputs and JSON objects are used verbatim, subject only to the
    policy's allowed and denied keys. For text, JSON keys win over line pairs
    with the same key, and among several embedded JSON objects the later one
    wins.
    """
    policy = policy or CarryOverPolicy()

    if isinstance(output, dict):
        objects = [output]
        variables: dict[str, Any] = {}
    elif isinstance(output, str):
        objects = _json_objects(output)
        variables = _line_pairs(output, policy)
    else:
        return {}

    for obj in objects:
        variables.update(
            (key, value) for key, value in obj.items() if isinstance(key, str) and policy.permits(key)
        )
    return variables
