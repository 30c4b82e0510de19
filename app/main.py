"""Assembles a ready-to-use investment form with its collaborators."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.config import load_settings
from app.currency import CURRENCIES, CurrencyManager
from app.diagnostics import build_diagnostics
from app.doc_render import DocumentGenerator
from app.form_schema import default_schema
from app.form_view import FieldView, ViewBinding, bind_view
from app.stores import FileSnapshotStore
from form_controller import FormController, FormSettings, SnapshotStore, build_context


logger = logging.getLogger("dealform")
logging.basicConfig(level=os.getenv("DEALFORM_LOG_LEVEL", "INFO").upper())


@dataclass
class FormApp:
    controller: FormController
    currency: CurrencyManager
    documents: DocumentGenerator
    persistence: SnapshotStore
    schema: dict

    def set_currency(self, code: str) -> bool:
        return self.currency.set_currency(code)

    def bind(self, view: FieldView) -> ViewBinding:
        return bind_view(self.controller, view)

    def diagnostics(self) -> dict:
        return build_diagnostics(self.controller, self.schema)


def create_form(
    settings: FormSettings | None = None,
    schema: dict | None = None,
    clock: Callable[[], float] | None = None,
    persistence: SnapshotStore | None = None,
) -> FormApp:
    settings = settings or load_settings()
    schema = schema or default_schema()
    code = settings.default_currency if settings.default_currency in CURRENCIES else "KRW"
    context = build_context(schema, settings, clock, multiplier=CURRENCIES[code]["multiplier"])
    currency = CurrencyManager(context.bus, default=code)
    if persistence is None:
        persistence = FileSnapshotStore(ROOT / settings.storage_dir)
    documents = DocumentGenerator(currency)
    controller = FormController(context, persistence, documents)
    logger.info("form_created session_id=%s currency=%s", context.session_id, code)
    return FormApp(controller, currency, documents, persistence, schema)
