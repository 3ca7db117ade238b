from __future__ import annotations

from xzchat.core.backup.diff import apply, diff


def _snap(**overrides):
    base = {
        "sessions": [],
        "snippets": {},
        "todos": {"t1": {"text": "buy milk"}, "t2": {"text": "ship it"}},
        "bookmarks": {},
        "notes": {"n1": "alpha", "n2": "beta", "n3": "gamma"},
        "templates": {},
        "personas": {},
        "workflows": {},
        "env": {"EDITOR": "vim"},
        "cron": {},
        "keybinds": {},
    }
    base.update(overrides)
    return base


def test_diff_only_contains_changed_domains():
    a = _snap()
    b = _snap(notes={"n1": "alpha", "n2": "beta", "n3": "gamma", "n4": "delta"}, todos={"t1": {"text": "buy milk"}})
    changes = diff(a, b)
    assert set(changes) == {"notes", "todos"}
    # whole domain value, not a field-level patch
    assert changes["notes"] == b["notes"]


def test_diff_ignores_key_order():
    a = _snap(env={"A": 1, "B": 2})
    b = _snap(env={"B": 2, "A": 1})
    assert diff(a, b) == {}


def test_diff_treats_missing_reference_domain_as_changed():
    a = _snap()
    del a["cron"]
    b = _snap(cron={})
    assert diff(a, b) == {"cron": {}}


def test_diff_detects_type_change_with_equal_truthiness():
    a = _snap(sessions=[])
    b = _snap(sessions={})
    assert set(diff(a, b)) == {"sessions"}


def test_apply_keeps_absent_domains_and_does_not_mutate_base():
    base = _snap()
    out = apply(base, {"notes": {}})
    assert out["notes"] == {}
    assert out["todos"] == base["todos"]
    assert base["notes"] == {"n1": "alpha", "n2": "beta", "n3": "gamma"}


def test_round_trip_law():
    pairs = [
        (_snap(), _snap()),
        (_snap(), _snap(notes={}, todos={}, env={"X": "1"})),
        (_snap(keybinds={"ctrl+k": "clear"}), _snap(sessions=[{"id": 1, "messages": ["hi"]}])),
        (_snap(notes={"n": [1, 2, {"deep": True}]}), _snap(notes={"n": [1, 2, {"deep": False}]})),
    ]
    for a, b in pairs:
        assert apply(a, diff(a, b)) == b
