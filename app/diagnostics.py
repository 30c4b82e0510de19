"""Diagnostics snapshot for a running form."""

from __future__ import annotations

from typing import Any, Dict

from app.form_schema import check_schema
from form_controller import FormController


Issue = Dict[str, Any]


def _validation_summary(result: dict | None) -> dict | None:
    if not result:
        return None
    return {
        "is_valid": result.get("is_valid"),
        "total_fields": result.get("total_fields"),
        "invalid_fields": result.get("invalid_fields"),
        "warnings": result.get("warnings"),
        "errors": list(result.get("errors") or []),
    }


def build_diagnostics(controller: FormController, schema: dict | None = None) -> dict:
    ctx = controller.ctx
    issues: list[Issue] = []
    if schema is not None:
        issues = check_schema(schema)
    state = ctx.tracker.state
    return {
        "session_id": ctx.session_id,
        "counts": {
            "fields": len(ctx.store.keys()),
            "visible": len(ctx.store.visible_keys()),
            "calculated": len([key for key in ctx.calc.calculable_fields() if ctx.store.has(key)]),
        },
        "state": {
            "is_dirty": state.is_dirty,
            "is_valid": state.is_valid,
            "completion_rate": round(state.completion_rate, 2),
            "last_modified": state.last_modified,
        },
        "unit_multiplier": ctx.calc.multiplier,
        "pending": ctx.scheduler.pending_keys(),
        "validation": _validation_summary(ctx.validation.last_result),
        "validation_passes": ctx.validation.pass_count,
        "history": ctx.history.statistics(),
        "schema_issues": issues,
    }
