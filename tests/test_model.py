import pytest

from distlab.model import Event, EventKind, Model, Operation


class Register(Model):
    def init(self):
        return 0

    def step(self, state, input, output):
        kind, value = input
        if kind == "write":
            return True, value
        return output == state, state


def test_model_without_step_cannot_be_instantiated():
    class Incomplete(Model):
        def init(self):
            return 0

    with pytest.raises(TypeError):
        Model()
    with pytest.raises(TypeError):
        Incomplete()


def test_default_partition_keeps_whole_history():
    history = [
        Operation(("write", 1), 0, None, 5),
        Operation(("read", None), 2, 1, 7),
    ]
    parts = Register().partition(history)
    assert parts == [history]
    assert parts[0] is not history


def test_default_partition_event_keeps_whole_history():
    events = [
        Event(EventKind.CALL, ("write", 4), 0),
        Event(EventKind.RETURN, None, 0),
    ]
    assert Register().partition_event(events) == [events]


def test_default_equal_compares_states():
    model = Register()
    assert Model.equal(model, 3, 3)
    assert not Model.equal(model, 3, 4)


def test_step_through_sequential_history():
    model = Register()
    history = [
        Operation(("write", 9), 0, None, 1),
        Operation(("read", None), 2, 9, 3),
    ]
    state = model.init()
    for operation in history:
        ok, state = model.step(state, operation.input, operation.output)
        assert ok
    assert Model.equal(model, state, 9)
    ok, _ = model.step(state, ("read", None), 8)
    assert not ok


def test_operation_and_event_are_values():
    assert Operation("in", 1, "out", 2) == Operation("in", 1, "out", 2)
    assert Event(EventKind.CALL, "x", 3) != Event(EventKind.RETURN, "x", 3)