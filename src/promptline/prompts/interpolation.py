"""
Variable interpolation for ``{{name}}`` prompt templates.

Interpolation is pure and never raises: every problem is reported through
``InterpolationResult.errors`` (blocking) or ``warnings`` (advisory) next to a
best-effort resolved string.
"""

import json
import math
import re
from collections.abc import Iterable
from functools import lru_cache
from typing import Any

from ..observability.logging import get_logger
from .models import InterpolationResult, VariableContext, VariableDefinition, VariableType

logger = get_logger(__name__)

# A well-formed token: exactly two braces on each side, no brace touching it.
TOKEN_PATTERN = re.compile(r"(?<!\{)\{\{(\w+)\}\}(?!\})")

CIRCULAR_PLACEHOLDER = "[Circular]"

_URL_PREFIXES = ("http://", "https://", "data:")
_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})


@lru_cache(maxsize=256)
def _token_names(template: str) -> tuple[str, ...]:
    return tuple(dict.fromkeys(m.group(1) for m in TOKEN_PATTERN.finditer(template)))


def _jsonable(value: Any, seen: frozenset[int] = frozenset()) -> Any:
    """Copy containers into plain JSON types, cutting reference cycles."""
    if isinstance(value, dict | list | tuple | set | frozenset):
        if id(value) in seen:
            return CIRCULAR_PLACEHOLDER
        seen = seen | {id(value)}
        if isinstance(value, dict):
            return {str(k): _jsonable(v, seen) for k, v in value.items()}
        return [_jsonable(v, seen) for v in value]
    return value


def render_json(value: Any) -> str:
    """Pretty-print a value as JSON; strings are assumed to already be JSON."""
    if isinstance(value, str):
        return value
    return json.dumps(_jsonable(value), indent=2, ensure_ascii=False, default=str)


def render_number(value: Any) -> str:
    if isinstance(value, bool):
        return str(int(value))
    number = value if isinstance(value, int | float) else float(str(value).strip())
    if isinstance(number, float) and math.isfinite(number) and number.is_integer():
        return str(int(number))
    return str(number)


def render_boolean(value: Any) -> str:
    if isinstance(value, str):
        truthy = value.strip().lower() in _TRUE_STRINGS
    else:
        truthy = bool(value)
    return "true" if truthy else "false"


class VariableInterpolator:
    """Resolves templates against typed variable contexts."""

    def interpolate(self, template: str, context: VariableContext) -> InterpolationResult:
        defs = {d.name: d for d in context.variable_defs}
        variables = context.variables
        result = InterpolationResult(resolved_prompt=template)

        for definition in context.variable_defs:
            if definition.required and definition.name not in variables:
                result.missing_variables.append(definition.name)
                result.errors.append(f"Required variable '{definition.name}' is missing")

        missing = set(result.missing_variables)
        undefined: list[str] = []

        def substitute(match: re.Match) -> str:
            name = match.group(1)
            definition = defs.get(name)
            if definition is None:
                if name not in undefined:
                    undefined.append(name)
                return match.group(0)
            if name in missing:
                return match.group(0)

            if name not in result.used_variables:
                result.used_variables.append(name)
            raw = variables.get(name)
            if raw is None:
                raw = definition.default_value
            return self._render(definition, raw, result.warnings)

        result.resolved_prompt = TOKEN_PATTERN.sub(substitute, template)

        for name in undefined:
            result.errors.append(f"Variable '{name}' found in template but not defined")

        for warning in result.warnings:
            logger.warning("Interpolation warning", detail=warning)
        if result.errors:
            logger.debug("Interpolation produced errors", errors=len(result.errors))

        return result

    def _render(self, definition: VariableDefinition, value: Any, warnings: list[str]) -> str:
        if value is None:
            return ""

        kind = definition.type
        try:
            if kind is VariableType.BOOLEAN:
                return render_boolean(value)
            if kind is VariableType.NUMBER:
                return render_number(value)
            if kind in (VariableType.ARRAY, VariableType.OBJECT, VariableType.JSON):
                return render_json(value)
            if kind is VariableType.URL:
                text = str(value)
                if not text.startswith(_URL_PREFIXES):
                    warnings.append(f"URL variable '{definition.name}' may be invalid: {text}")
                return text
        except (TypeError, ValueError) as e:
            warnings.append(
                f"Variable '{definition.name}' could not be rendered as {kind.value}: {e}"
            )
        return str(value)

    def extract_variable_names(self, template: str) -> list[str]:
        """Ordered, de-duplicated names of the well-formed tokens in ``template``."""
        return list(_token_names(template))

    def validate_template(
        self, template: str, variable_defs: Iterable[VariableDefinition]
    ) -> list[str]:
        """Static lint: report tokens with no matching definition."""
        defined = {d.name for d in variable_defs}
        return [
            f"Variable '{name}' used in template but not defined"
            for name in _token_names(template)
            if name not in defined
        ]
