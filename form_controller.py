"""Form controller: runs the edit cycle over the field-state components.

One user edit goes through a fixed sequence, all against the same store:

    FieldStore.set -> CalculationEngine.run -> VisibilityEvaluator.evaluate
        -> immediate validation -> FormStateTracker (next frame)
        -> whole-form validation (debounced) -> auto-save (debounced)

Components are built once into a ``FormContext`` and handed to whoever needs
them; nothing is looked up globally.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Protocol

from dealform.snapshot_hash import snapshot_hash

from calc_engine import DEFAULT_UNIT_MULTIPLIER, CalculationEngine, CalculationRule
from change_history import KIND_CLEAR, KIND_DOCUMENT, KIND_LOAD, KIND_SAVE, ChangeHistory
from event_bus import Event, EventBus, Topic
from field_store import ORIGIN_CLEAR, ORIGIN_LOAD, ORIGIN_USER, FieldSpec, FieldStore
from form_state import FormStateTracker
from form_validation import ValidationEngine
from scheduler import Scheduler
from visibility_eval import LabelRule, VisibilityEvaluator


logger = logging.getLogger("dealform.form")

AUTOSAVE_SLOT = "autosave"


class SnapshotStore(Protocol):
    def save(self, values: dict) -> bool: ...

    def load(self) -> dict | None: ...


class DocumentGenerator(Protocol):
    def generate(self, kind: str, values: dict) -> Any: ...


@dataclass(frozen=True)
class FormSettings:
    validation_debounce_ms: int = 500
    autosave_enabled: bool = True
    autosave_interval_ms: int = 30_000
    visible_cache_ttl_ms: int = 100
    history_size: int = 50
    default_currency: str = "KRW"
    storage_dir: str = "storage"


@dataclass
class FormContext:
    settings: FormSettings
    session_id: str
    bus: EventBus
    scheduler: Scheduler
    store: FieldStore
    calc: CalculationEngine
    visibility: VisibilityEvaluator
    validation: ValidationEngine
    tracker: FormStateTracker
    history: ChangeHistory


def _sections(schema: dict) -> list[dict]:
    sections = schema.get("sections") if isinstance(schema, dict) else None
    if isinstance(sections, list):
        return [s for s in sections if isinstance(s, dict)]
    if isinstance(sections, dict):
        items = []
        for section_key, section in sections.items():
            if isinstance(section, dict):
                items.append({"key": section_key, **section})
        return items
    return []


def _section_fields(section: dict) -> list[tuple[str, dict]]:
    fields = section.get("fields")
    if fields is None:
        fields = section.get("variables")
    if isinstance(fields, dict):
        return [(key, data) for key, data in fields.items() if isinstance(data, dict)]
    if isinstance(fields, list):
        return [(data["key"], data) for data in fields if isinstance(data, dict) and data.get("key")]
    return []


def parse_schema(schema: dict) -> tuple[list[FieldSpec], list[LabelRule]]:
    """Turn a sections/fields schema into field specs and label rules, in declaration order."""
    specs: List[FieldSpec] = []
    for section in _sections(schema):
        section_key = section.get("key")
        for key, data in _section_fields(section):
            specs.append(FieldSpec.from_dict(key, data, section=section_key))
    label_rules = []
    for item in schema.get("label_rules") or []:
        if not isinstance(item, dict):
            continue
        label_rules.append(
            LabelRule(
                target=item.get("target"),
                condition_field=item.get("condition_field"),
                operator=item.get("operator") or "equals",
                comparison_value=item.get("value"),
                label=item.get("label"),
            )
        )
    return specs, label_rules


def build_context(
    schema: dict,
    settings: FormSettings | None = None,
    clock: Callable[[], float] | None = None,
    rules: Iterable[CalculationRule] | None = None,
    multiplier: float = DEFAULT_UNIT_MULTIPLIER,
) -> FormContext:
    settings = settings or FormSettings()
    session_id = str(uuid.uuid4())
    bus = EventBus(session_id=session_id)
    scheduler = Scheduler(clock=clock)
    store = FieldStore(bus)
    specs, label_rules = parse_schema(schema)
    for spec in specs:
        if store.has(spec.key):
            logger.warning("schema_duplicate_field key=%s", spec.key)
            continue
        store.register(spec.key, spec)
    calc = CalculationEngine(store, rules=rules, bus=bus, multiplier=multiplier)
    visibility = VisibilityEvaluator.from_store(store, label_rules, bus)
    validation = ValidationEngine(
        store,
        scheduler=scheduler,
        bus=bus,
        calc=calc,
        debounce_s=settings.validation_debounce_ms / 1000.0,
    )
    tracker = FormStateTracker(store, scheduler, bus, cache_ttl_s=settings.visible_cache_ttl_ms / 1000.0)
    history = ChangeHistory(session_id, max_records=settings.history_size)
    return FormContext(settings, session_id, bus, scheduler, store, calc, visibility, validation, tracker, history)


class FormController:
    def __init__(
        self,
        context: FormContext,
        persistence: SnapshotStore | None = None,
        documents: DocumentGenerator | None = None,
    ) -> None:
        self.ctx = context
        self.persistence = persistence
        self.documents = documents
        self.last_cycle: dict | None = None
        self._last_saved_hash: str | None = None
        context.bus.subscribe(Topic.FIELD_CHANGED, self._on_field_changed)
        context.bus.subscribe(Topic.UNIT_CHANGED, self._on_unit_changed)
        self._initialize()

    @classmethod
    def from_schema(
        cls,
        schema: dict,
        settings: FormSettings | None = None,
        clock: Callable[[], float] | None = None,
        persistence: SnapshotStore | None = None,
        documents: DocumentGenerator | None = None,
    ) -> "FormController":
        return cls(build_context(schema, settings, clock), persistence, documents)

    @property
    def session_id(self) -> str:
        return self.ctx.session_id

    def _initialize(self) -> None:
        self.ctx.calc.run(None)
        self.ctx.visibility.evaluate()
        self._revalidate_now()
        logger.info(
            "form_initialized session_id=%s fields=%s visible=%s",
            self.ctx.session_id,
            len(self.ctx.store.keys()),
            len(self.ctx.store.visible_keys()),
        )

    def _revalidate_now(self) -> dict:
        result = self.ctx.validation.flush()
        self.ctx.tracker.set_validation_errors(result.get("error_map") or {})
        self.ctx.tracker.recompute()
        return result

    # edit cycle

    def on_change(self, key: str, value: Any) -> dict | None:
        """Entry point for a user edit coming from the field view."""
        self.ctx.store.set(key, value, origin=ORIGIN_USER)
        return self.last_cycle

    def _on_field_changed(self, event: Event) -> None:
        payload = event["payload"]
        if payload.get("origin") != ORIGIN_USER:
            return
        self._run_cycle(payload["field"], payload.get("value"))

    def _run_cycle(self, key: str, value: Any) -> None:
        ctx = self.ctx
        calculated = ctx.calc.run(key)
        display = ctx.visibility.evaluate(key, value)
        field_result = ctx.validation.validate_field(key, value)
        ctx.tracker.mark_edit(key, field_result)
        for target in calculated:
            ctx.tracker.mark_edit(target, ctx.validation.validate_field(target))
        ctx.tracker.request_update()
        ctx.validation.request_validation()
        ctx.history.append(
            key,
            value,
            success=field_result["is_valid"],
            details={"calculated": calculated} if calculated else None,
        )
        self._schedule_autosave()
        self.last_cycle = {
            "field": key,
            "value": value,
            "calculated": calculated,
            "visibility": display["visibility"],
            "labels": display["labels"],
            "field_result": field_result,
        }

    def _on_unit_changed(self, event: Event) -> None:
        calculated = self.ctx.calc.run(None)
        if calculated:
            self.ctx.tracker.request_update()
            self.ctx.validation.request_validation()

    def tick(self) -> int:
        """Run due deferred work; call from the host loop once per frame."""
        return self.ctx.scheduler.run_due()

    # read side

    def get_all_field_values(self) -> dict:
        return self.ctx.store.get_all_values()

    def get_state(self) -> dict:
        return self.ctx.tracker.state.to_dict()

    def visible_fields(self) -> list[str]:
        return self.ctx.tracker.visible_fields()

    def completion_rate(self) -> float:
        return self.ctx.tracker.completion_rate()

    def validate(self) -> dict:
        return self._revalidate_now()

    # persistence

    def populate_form(self, values: dict) -> dict:
        ctx = self.ctx
        loaded = 0
        ignored: List[str] = []
        for key, value in (values or {}).items():
            if not ctx.store.has(key):
                ignored.append(key)
                continue
            ctx.store.set(key, value, origin=ORIGIN_LOAD)
            loaded += 1
        if ignored:
            logger.info("populate_ignored_fields fields=%s", ignored)
        ctx.calc.run(None)
        ctx.visibility.evaluate()
        ctx.tracker.invalidate_visible_cache()
        ctx.scheduler.cancel(AUTOSAVE_SLOT)
        ctx.tracker.mark_clean()
        self._last_saved_hash = snapshot_hash(ctx.store.get_all_values())
        self._revalidate_now()
        ctx.history.append(None, None, kind=KIND_LOAD, details={"loaded": loaded, "ignored": ignored})
        return {"ok": True, "loaded": loaded, "ignored": ignored}

    def clear(self) -> dict:
        ctx = self.ctx
        ctx.validation.cancel()
        ctx.scheduler.cancel(AUTOSAVE_SLOT)
        for key in ctx.store.keys():
            ctx.store.set(key, ctx.store.default_value(key), origin=ORIGIN_CLEAR)
        ctx.calc.run(None)
        ctx.visibility.evaluate()
        ctx.tracker.reset()
        self._revalidate_now()
        ctx.history.append(None, None, kind=KIND_CLEAR)
        self._notify("info", "데이터가 초기화되었습니다.")
        return {"ok": True}

    def save(self, auto: bool = False) -> dict:
        if self.persistence is None:
            return {"ok": False, "code": "NO_PERSISTENCE", "errors": ["persistence not configured"]}
        values = self.ctx.store.get_all_values()
        fingerprint = snapshot_hash(values)
        if auto and fingerprint == self._last_saved_hash:
            self.ctx.tracker.mark_clean()
            return {"ok": True, "skipped": True}
        try:
            ok = bool(self.persistence.save(values))
        except Exception:
            logger.exception("save_failed session_id=%s", self.ctx.session_id)
            ok = False
        self.ctx.history.append(None, None, kind=KIND_SAVE, success=ok, details={"auto": auto})
        if not ok:
            self._notify("error", "데이터 저장에 실패했습니다.")
            return {"ok": False, "code": "SAVE_FAILED", "errors": ["save rejected"]}
        self._last_saved_hash = fingerprint
        self.ctx.tracker.mark_clean()
        self.ctx.tracker.request_update()
        self._notify("success", "데이터가 임시저장되었습니다." if auto else "데이터가 저장되었습니다.")
        return {"ok": True, "skipped": False}

    def load(self) -> dict:
        if self.persistence is None:
            return {"ok": False, "code": "NO_PERSISTENCE", "errors": ["persistence not configured"]}
        try:
            values = self.persistence.load()
        except Exception:
            logger.exception("load_failed session_id=%s", self.ctx.session_id)
            self._notify("error", "데이터 불러오기에 실패했습니다.")
            return {"ok": False, "code": "LOAD_FAILED", "errors": ["load failed"]}
        if not values:
            self._notify("info", "저장된 데이터가 없습니다.")
            return {"ok": False, "code": "NO_SAVED_DATA", "errors": []}
        result = self.populate_form(values)
        self._notify("success", "저장된 데이터를 불러왔습니다.")
        return result

    def _schedule_autosave(self) -> None:
        settings = self.ctx.settings
        if not settings.autosave_enabled or self.persistence is None:
            return
        self.ctx.scheduler.debounce(AUTOSAVE_SLOT, settings.autosave_interval_ms / 1000.0, self._autosave)

    def _autosave(self) -> None:
        if not self.ctx.tracker.state.is_dirty:
            return
        if not self.ctx.store.has_input():
            logger.info("autosave_skipped reason=empty session_id=%s", self.ctx.session_id)
            return
        self.save(auto=True)

    # documents

    def generate_document(self, kind: str) -> dict:
        validation = self._revalidate_now()
        if not validation.get("is_valid"):
            self.ctx.history.append(None, None, kind=KIND_DOCUMENT, success=False, details={"document": kind})
            self._notify("error", "입력 데이터에 오류가 있습니다. 미리보기에서 확인해주세요.")
            return {"ok": False, "code": "FORM_INVALID", "errors": list(validation.get("errors") or [])}
        if self.documents is None:
            return {"ok": False, "code": "NO_DOCUMENT_GENERATOR", "errors": ["document generator not configured"]}
        try:
            document = self.documents.generate(kind, self.ctx.store.get_all_values())
        except Exception as exc:
            logger.exception("document_failed kind=%s", kind)
            self.ctx.history.append(None, None, kind=KIND_DOCUMENT, success=False, details={"document": kind})
            self._notify("error", f"문서 생성에 실패했습니다: {exc}")
            return {"ok": False, "code": "DOCUMENT_FAILED", "errors": [str(exc)]}
        self.ctx.history.append(None, None, kind=KIND_DOCUMENT, success=True, details={"document": kind})
        self._notify("success", "문서가 생성되었습니다.")
        return {"ok": True, "document": document}

    def _notify(self, level: str, message: str) -> None:
        self.ctx.bus.publish(Topic.NOTICE, {"level": level, "message": message})
