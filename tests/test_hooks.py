from mediaingest.core.hooks import SAVED, SAVING, WILDCARD, Hooks


def test_listeners_run_in_registration_order():
    hooks = Hooks()
    calls = []
    hooks.subscribe(SAVING, lambda event, payload: calls.append(("first", event)))
    hooks.subscribe(SAVING, lambda event, payload: calls.append(("second", event)))
    hooks.subscribe(WILDCARD, lambda event, payload: calls.append(("any", event)))

    hooks.notify(SAVING, {"name": "a.png", "size": 1})
    hooks.notify(SAVED, {"name": "a.png", "size": 1})

    assert calls == [("first", SAVING), ("second", SAVING), ("any", SAVING), ("any", SAVED)]


def test_unsubscribe_and_failing_listener():
    hooks = Hooks()
    calls = []

    def record(event, payload):
        calls.append(payload["name"])

    def broken(event, payload):
        raise ValueError("boom")

    hooks.subscribe(SAVING, broken)
    hooks.subscribe(SAVING, record)
    hooks.notify(SAVING, {"name": "a.png"})

    hooks.unsubscribe(SAVING, record)
    hooks.notify(SAVING, {"name": "b.png"})

    assert calls == ["a.png"]
