"""Sandboxed Jinja2 rendering for generated documents."""

from __future__ import annotations

from typing import Any, Iterable, Tuple

from jinja2 import StrictUndefined, TemplateSyntaxError, Undefined, meta
from jinja2.sandbox import ImmutableSandboxedEnvironment

_ALLOWED_FILTERS = {
    "default",
    "upper",
    "trim",
    "replace",
    "length",
    "join",
}

_ALLOWED_TESTS = {
    "defined",
    "undefined",
    "none",
    "equalto",
}


class _LockedSandbox(ImmutableSandboxedEnvironment):
    def is_safe_attribute(self, obj, attr, value) -> bool:
        return False

    def is_safe_callable(self, obj) -> bool:
        return False


def _env(strict: bool) -> _LockedSandbox:
    env = _LockedSandbox(
        autoescape=False,
        undefined=StrictUndefined if strict else Undefined,
        keep_trailing_newline=True,
    )
    env.globals = {}
    env.filters = {key: val for key, val in env.filters.items() if key in _ALLOWED_FILTERS}
    env.tests = {key: val for key, val in env.tests.items() if key in _ALLOWED_TESTS}
    return env


def _sanitize_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(key): _sanitize_value(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize_value(val) for val in value]
    return str(value)


def collect_undeclared_vars(template_text: str | None) -> set[str]:
    if not template_text:
        return set()
    return set(meta.find_undeclared_variables(_env(strict=False).parse(template_text)))


def validate_templates(templates: Iterable[Tuple[str, str | None]], known_vars: Iterable[str]) -> list[dict]:
    """Syntax-check templates and flag variables no field maps to."""
    known = set(known_vars)
    errors: list[dict] = []
    env = _env(strict=False)
    for label, text in templates:
        if not text:
            continue
        try:
            parsed = env.parse(text)
        except TemplateSyntaxError as exc:
            errors.append({"code": "TEMPLATE_SYNTAX", "message": f"{label}: {exc.message}", "line": exc.lineno or 1})
            continue
        for name in sorted(set(meta.find_undeclared_variables(parsed)) - known):
            errors.append({"code": "TEMPLATE_VAR_UNKNOWN", "message": f"{label}: unknown variable {name}", "line": None})
    return errors


def render_template(text: str | None, context: dict[str, Any] | None, strict: bool = True) -> str:
    """Render ``text``; with ``strict`` a missing variable raises ``UndefinedError``."""
    tmpl = _env(strict=strict).from_string(text or "")
    return tmpl.render(_sanitize_value(context or {}))


