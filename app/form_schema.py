"""Default investment form schema, schema loading and schema lint."""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

from calc_engine import RuleId, default_rules
from form_controller import parse_schema
from visibility_eval import ConditionalRule, check_rules


Issue = Dict[str, Any]

INVESTMENT_METHODS = ["보통주", "전환우선주", "전환상환우선주", "전환사채"]

_PERCENT = {"type": "percentage", "min": 0, "max": 100, "unit": "%"}

DEFAULT_SCHEMA: dict = {
    "sections": [
        {
            "key": "company",
            "title": "회사 기본 정보",
            "fields": [
                {"key": "투자대상", "type": "text", "label": "투자대상", "required": True, "pattern": "korean_english",
                 "placeholder": "회사명을 입력하세요"},
                {"key": "대표자", "type": "text", "label": "대표자", "required": True, "pattern": "korean_english"},
                {"key": "주소", "type": "text", "label": "회사주소"},
            ],
        },
        {
            "key": "terms",
            "title": "투자 조건",
            "fields": [
                {"key": "투자방식", "type": "select", "label": "투자방식", "required": True,
                 "options": INVESTMENT_METHODS, "default": "전환상환우선주"},
                {"key": "Series", "type": "text", "label": "Series", "placeholder": "예: Series A"},
                {"key": "투자금액", "type": "currency", "label": "투자금액", "required": True, "min": 0, "unit": "억원"},
                {"key": "투자단가", "type": "currency", "label": "투자단가", "required": True, "min": 0, "unit": "원"},
                {"key": "액면가", "type": "currency", "label": "액면가", "required": True, "min": 0, "unit": "원"},
                {"key": "상환이자", "label": "상환이자", **_PERCENT, "conditional": True,
                 "condition_field": "투자방식", "condition_operator": "in_list",
                 "condition_value": ["전환상환우선주", "전환사채"]},
                {"key": "잔여분배이자", "label": "잔여분배이자", **_PERCENT, "conditional": True,
                 "condition_field": "투자방식", "condition_operator": "not_in_list",
                 "condition_value": ["보통주", "전환사채"]},
                {"key": "주매청이자", "label": "주매청이자", **_PERCENT},
                {"key": "배당률", "label": "배당률", **_PERCENT, "conditional": True,
                 "condition_field": "투자방식", "condition_operator": "not_equals", "condition_value": "전환사채"},
                {"key": "위약벌", "label": "위약벌", **_PERCENT},
            ],
        },
        {
            "key": "valuation",
            "title": "재무 정보",
            "fields": [
                {"key": "투자전가치", "type": "currency", "label": "투자전가치", "required": True, "min": 0,
                 "unit": "억원"},
                {"key": "투자후가치", "type": "currency", "label": "투자후가치", "required": True, "unit": "억원",
                 "calculated": True, "formula": RuleId.POST_MONEY.value},
                {"key": "지분율", "label": "지분율", **_PERCENT, "calculated": True,
                 "formula": RuleId.OWNERSHIP.value},
                {"key": "인수주식수", "type": "integer", "label": "인수주식수", "unit": "주", "calculated": True,
                 "formula": RuleId.SHARES_ACQUIRED.value},
            ],
        },
        {
            "key": "operations",
            "title": "운영 정보",
            "fields": [
                {"key": "사용용도", "type": "textarea", "label": "사용용도"},
                {"key": "투자재원", "type": "text", "label": "투자재원"},
                {"key": "동반투자자", "type": "text", "label": "동반투자자"},
            ],
        },
        {
            "key": "managers",
            "title": "담당자",
            "fields": [
                {"key": "투자총괄", "type": "text", "label": "투자총괄", "required": True, "pattern": "korean_english"},
                {"key": "담당자1", "type": "text", "label": "담당자1"},
                {"key": "담당자2", "type": "text", "label": "담당자2"},
            ],
        },
    ],
    "label_rules": [
        {"target": "인수주식수", "condition_field": "투자방식", "operator": "equals", "value": "전환사채",
         "label": "전환주식수"},
        {"target": "지분율", "condition_field": "투자방식", "operator": "equals", "value": "전환사채",
         "label": "전환시지분율"},
    ],
}


@dataclass
class SchemaError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def default_schema() -> dict:
    return copy.deepcopy(DEFAULT_SCHEMA)


def load_schema(path: str | Path) -> dict:
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise SchemaError("SCHEMA_NOT_FOUND", f"Schema file not found: {path}", str(path)) from exc
    except json.JSONDecodeError as exc:
        raise SchemaError("SCHEMA_INVALID_JSON", exc.msg, f"line {exc.lineno}") from exc
    if not isinstance(data, dict) or not data.get("sections"):
        raise SchemaError("SCHEMA_INVALID", "schema must be an object with sections", str(path))
    return data


def _declared_keys(schema: dict) -> list[str]:
    keys: List[str] = []
    sections = schema.get("sections")
    if isinstance(sections, dict):
        sections = [dict(section, key=key) for key, section in sections.items() if isinstance(section, dict)]
    for section in sections or []:
        fields = section.get("fields", section.get("variables"))
        if isinstance(fields, dict):
            keys.extend(fields.keys())
        elif isinstance(fields, list):
            keys.extend(f.get("key") for f in fields if isinstance(f, dict) and f.get("key"))
    return keys


def check_schema(schema: dict) -> list[Issue]:
    """Lint a schema. Runtime tolerates every issue reported here."""
    if not isinstance(schema, dict) or not schema.get("sections"):
        return [_issue("SCHEMA_INVALID", "schema must be an object with sections")]
    issues: List[Issue] = []
    seen: set = set()
    for key in _declared_keys(schema):
        if key in seen:
            issues.append(_issue("FIELD_DUPLICATE", f"Field declared twice: {key}", key))
        seen.add(key)

    specs, label_rules = parse_schema(schema)
    known = {spec.key for spec in specs}
    conditional = [rule for rule in (ConditionalRule.from_spec(spec) for spec in specs) if rule is not None]
    issues.extend(check_rules(conditional, label_rules, known))

    rules = {rule.rule_id.value: rule for rule in default_rules()}
    for spec in specs:
        if spec.type == "select" and spec.default not in ("", None) and spec.default not in spec.options:
            issues.append(_issue("FIELD_DEFAULT_INVALID", f"Default not in options: {spec.default}", spec.key))
        if not spec.calculated and not spec.formula:
            continue
        path = f"{spec.key}.formula"
        rule = rules.get(spec.formula or "")
        if rule is None:
            issues.append(_issue("FORMULA_UNKNOWN", f"Unknown formula: {spec.formula}", path))
            continue
        if rule.target != spec.key:
            issues.append(
                _issue(
                    "FORMULA_TARGET_MISMATCH",
                    f"{spec.formula} writes {rule.target}, not {spec.key}",
                    path,
                    {"target": rule.target},
                )
            )
        for dep in rule.dependencies:
            if dep not in known:
                issues.append(_issue("RULE_DEPENDENCY_UNKNOWN", f"Undeclared dependency: {dep}", path, {"dep": dep}))
    return issues
