import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from event_bus import EventBus, EventValidationError, Topic, make_event, validate_event


class TestEventBus(unittest.TestCase):
    def test_publish_delivers_to_topic_subscribers(self) -> None:
        bus = EventBus(session_id="s1")
        seen = []
        bus.subscribe(Topic.FIELD_CHANGED, seen.append)
        bus.subscribe(Topic.NOTICE, lambda e: self.fail("wrong topic"))
        event = bus.publish(Topic.FIELD_CHANGED, {"field": "투자금액", "value": "10", "origin": "user"})
        self.assertEqual(len(seen), 1)
        self.assertEqual(seen[0]["name"], "field.changed")
        self.assertEqual(seen[0]["meta"]["session_id"], "s1")
        self.assertEqual(event["payload"]["field"], "투자금액")

    def test_handlers_run_in_subscription_order(self) -> None:
        bus = EventBus()
        order = []
        bus.subscribe(Topic.NOTICE, lambda e: order.append("first"))
        bus.subscribe(Topic.NOTICE, lambda e: order.append("second"))
        bus.publish(Topic.NOTICE, {"level": "info", "message": "x"})
        self.assertEqual(order, ["first", "second"])

    def test_failing_handler_does_not_stop_others(self) -> None:
        bus = EventBus()
        seen = []

        def boom(event):
            raise RuntimeError("boom")

        bus.subscribe(Topic.NOTICE, boom)
        bus.subscribe(Topic.NOTICE, seen.append)
        with self.assertLogs("dealform.events", level="ERROR"):
            bus.publish(Topic.NOTICE, {"level": "info", "message": "x"})
        self.assertEqual(len(seen), 1)

    def test_unsubscribe(self) -> None:
        bus = EventBus()
        seen = []
        bus.subscribe(Topic.UNIT_CHANGED, seen.append)
        self.assertTrue(bus.unsubscribe(Topic.UNIT_CHANGED, seen.append))
        self.assertFalse(bus.unsubscribe(Topic.UNIT_CHANGED, seen.append))
        bus.publish(Topic.UNIT_CHANGED, {"multiplier": 1000000})
        self.assertEqual(seen, [])

    def test_unknown_topic_rejected(self) -> None:
        bus = EventBus()
        with self.assertRaises(EventValidationError) as ctx:
            bus.subscribe("field.exploded", lambda e: None)
        self.assertEqual(ctx.exception.code, "EVENT_NAME_INVALID")

    def test_payload_must_be_json(self) -> None:
        with self.assertRaises(EventValidationError) as ctx:
            make_event(Topic.NOTICE, {"bad": object()})
        self.assertEqual(ctx.exception.code, "PAYLOAD_INVALID")

    def test_payload_is_copied(self) -> None:
        payload = {"changes": {"상환이자": False}}
        event = make_event(Topic.VISIBILITY_CHANGED, payload)
        payload["changes"]["상환이자"] = True
        self.assertFalse(event["payload"]["changes"]["상환이자"])

    def test_validate_event_meta(self) -> None:
        event = make_event(Topic.NOTICE, {"level": "info"})
        event["meta"]["occurred_at"] = "2024-01-01T00:00:00"
        with self.assertRaises(EventValidationError) as ctx:
            validate_event(event)
        self.assertEqual(ctx.exception.code, "META_OCCURRED_AT_INVALID")


if __name__ == "__main__":
    unittest.main()
