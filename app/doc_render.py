"""Document generation from a validated field snapshot."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict

from dealform.numbers import format_integer, format_number, is_blank, parse_number

from app.currency import CurrencyManager
from app.template_render import render_template, validate_templates


logger = logging.getLogger("dealform.documents")

PERCENT_FIELDS = ("지분율", "상환이자", "잔여분배이자", "주매청이자", "배당률", "위약벌")
AMOUNT_FIELDS = ("투자금액", "투자전가치", "투자후가치")
PRICE_FIELDS = ("투자단가", "액면가")
SHARE_FIELDS = ("인수주식수",)

TEMPLATE_VARS: Dict[str, str] = {
    "투자대상": "company_name",
    "대표자": "ceo_name",
    "투자금액": "investment_amount",
    "투자방식": "investment_method",
    "투자단가": "price_per_share",
    "액면가": "par_value",
    "투자전가치": "pre_money_valuation",
    "투자후가치": "post_money_valuation",
    "지분율": "ownership_percentage",
    "인수주식수": "shares_acquired",
    "투자재원": "investment_source",
    "사용용도": "use_of_funds",
    "투자총괄": "investment_manager",
    "담당자1": "manager1",
    "담당자2": "manager2",
    "담당자": "managers",
    "상환이자": "redemption_interest",
    "잔여분배이자": "residual_distribution_interest",
    "주매청이자": "tag_along_interest",
    "배당률": "dividend_rate",
    "위약벌": "penalty_rate",
    "주소": "company_address",
    "동반투자자": "co_investors",
    "Series": "series",
    "기존주주지분율": "existing_ownership",
    "프리미엄": "premium",
    "생성일자": "generation_date",
    "생성시간": "generation_time",
}

TERMSHEET = """\
# Term Sheet

투자대상: {{ company_name }} (대표자 {{ ceo_name }})
주소: {{ company_address }}
라운드: {{ series }}

## 투자 조건
- 투자방식: {{ investment_method }}
- 투자금액: {{ investment_amount }}
- 투자단가: {{ price_per_share }} (액면가 {{ par_value }}, 프리미엄 {{ premium }})
- 인수주식수: {{ shares_acquired }}
- 투자전가치: {{ pre_money_valuation }}
- 투자후가치: {{ post_money_valuation }}
- 지분율: {{ ownership_percentage }} (기존주주 {{ existing_ownership }})

## 수익 조건
- 상환이자: {{ redemption_interest }}
- 잔여분배이자: {{ residual_distribution_interest }}
- 주매청이자: {{ tag_along_interest }}
- 배당률: {{ dividend_rate }}
- 위약벌: {{ penalty_rate }}

작성일: {{ generation_date }}
"""

PRELIMINARY = """\
# 예비투심위 보고서

## 1. 투자 개요
- 투자대상: {{ company_name }}
- 대표자: {{ ceo_name }}
- 투자방식: {{ investment_method }} / {{ series }}
- 투자금액: {{ investment_amount }} ({{ investment_source }})
- 동반투자자: {{ co_investors }}

## 2. 밸류에이션
- 투자전가치: {{ pre_money_valuation }}
- 투자후가치: {{ post_money_valuation }}
- 지분율: {{ ownership_percentage }}
- 투자단가: {{ price_per_share }} / 인수주식수 {{ shares_acquired }}

## 3. 자금 사용 계획
{{ use_of_funds }}

## 4. 담당
- 투자총괄: {{ investment_manager }}
- 담당자: {{ managers }}

생성시간: {{ generation_time }}
"""

TEMPLATES: Dict[str, dict] = {
    "termsheet": {
        "name": "Term Sheet",
        "body": TERMSHEET,
        "required": ["투자대상", "대표자", "투자금액", "투자방식", "투자단가", "액면가", "투자전가치", "투자후가치"],
    },
    "preliminary": {
        "name": "예비투심위 보고서",
        "body": PRELIMINARY,
        "required": ["투자대상", "대표자", "투자금액", "투자방식", "투자전가치", "투자후가치", "투자총괄"],
    },
}

_UNSAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9가-힣]")


@dataclass
class DocumentError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


def _korean_date(moment: datetime) -> str:
    return f"{moment.year}. {moment.month}. {moment.day}."


def _korean_time(moment: datetime) -> str:
    hour = moment.hour % 12 or 12
    half = "오전" if moment.hour < 12 else "오후"
    return f"{_korean_date(moment)} {half} {hour}:{moment.minute:02d}:{moment.second:02d}"


class DocumentGenerator:
    def __init__(
        self,
        currency: CurrencyManager | None = None,
        templates: Dict[str, dict] | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._currency = currency
        self._templates = templates if templates is not None else TEMPLATES
        self._now = now or datetime.now

    def kinds(self) -> list[str]:
        return list(self._templates.keys())

    def _amount_suffix(self) -> str:
        return self._currency.current()["suffix"] if self._currency else "억원"

    def _price_suffix(self) -> str:
        return self._currency.current()["base_unit"] if self._currency else "원"

    def _format_field(self, key: str, value: Any) -> str:
        number = parse_number(value)
        if number is None:
            return str(value)
        if key in PERCENT_FIELDS:
            return f"{number:.2f}%"
        if key in AMOUNT_FIELDS:
            return format_number(number) + self._amount_suffix()
        if key in PRICE_FIELDS:
            return format_number(number) + self._price_suffix()
        if key in SHARE_FIELDS:
            return format_integer(number) + "주"
        return str(value)

    def preprocess_values(self, values: dict) -> dict:
        processed: Dict[str, str] = {}
        for key, value in values.items():
            processed[key] = "-" if is_blank(value) else self._format_field(key, value)

        managers = [values.get(k) for k in ("담당자1", "담당자2") if not is_blank(values.get(k))]
        processed["담당자"] = ", ".join(str(m) for m in managers) if managers else "-"

        ownership = parse_number(values.get("지분율"))
        if ownership is not None and ownership > 0:
            processed["기존주주지분율"] = f"{100 - ownership:.2f}%"
        price = parse_number(values.get("투자단가"))
        par = parse_number(values.get("액면가"))
        if price is not None and par is not None and price > 0 and par > 0:
            processed["프리미엄"] = format_number(price - par) + self._price_suffix()

        moment = self._now()
        processed["생성일자"] = _korean_date(moment)
        processed["생성시간"] = _korean_time(moment)
        return processed

    def map_template_vars(self, processed: dict) -> dict:
        context = {name: "-" for name in TEMPLATE_VARS.values()}
        for key, value in processed.items():
            name = TEMPLATE_VARS.get(key)
            if name:
                context[name] = value
        return context

    def missing_fields(self, kind: str, values: dict) -> list[str]:
        config = self._template(kind)
        return [key for key in config.get("required") or [] if is_blank(values.get(key))]

    def _template(self, kind: str) -> dict:
        config = self._templates.get(kind)
        if config is None:
            raise DocumentError("TEMPLATE_UNKNOWN", f"Unknown document type: {kind}", kind)
        return config

    def filename(self, kind: str, values: dict) -> str:
        company = values.get("투자대상")
        safe = _UNSAFE_NAME_RE.sub("_", str(company)) if not is_blank(company) else "Unknown"
        return f"{self._template(kind)['name']}_{safe}_{self._now().strftime('%Y-%m-%d')}.md"

    def generate(self, kind: str, values: dict) -> dict:
        config = self._template(kind)
        missing = self.missing_fields(kind, values)
        if missing:
            raise DocumentError(
                "TEMPLATE_FIELDS_MISSING",
                f"{config['name']} 생성에 필요한 필수 정보가 부족합니다: {', '.join(missing)}",
                kind,
            )
        context = self.map_template_vars(self.preprocess_values(values))
        content = render_template(config["body"], context, strict=True)
        logger.info("document_generated kind=%s chars=%s", kind, len(content))
        return {
            "kind": kind,
            "name": config["name"],
            "filename": self.filename(kind, values),
            "content": content,
        }

    def check_templates(self) -> list[dict]:
        return validate_templates(
            ((kind, config.get("body")) for kind, config in self._templates.items()),
            TEMPLATE_VARS.values(),
        )
