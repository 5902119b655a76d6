# pylint: disable=missing-module-docstring,missing-function-docstring

from fakes import event_types
from session.teardown import Teardown


def test_steps_run_in_order_once(emitted):
    calls: list[str] = []
    teardown = Teardown(session_id="sess_test")
    teardown.add("first", lambda: calls.append("first"))
    teardown.add("second", lambda: calls.append("second"))

    assert teardown.run(reason="user_initiated") == []
    assert teardown.run(reason="user_initiated") == []

    assert calls == ["first", "second"]
    assert teardown.done is True

    (complete,) = [e for e in emitted if e["event_type"] == "TEARDOWN_COMPLETE"]
    assert complete["reason"] == "user_initiated"
    assert complete["steps"] == ["first", "second"]


def test_failing_step_does_not_stop_the_rest(emitted):
    calls: list[str] = []

    def broken() -> None:
        raise OSError("device vanished")

    teardown = Teardown()
    teardown.add("capture.stop", broken)
    teardown.add("output.close", lambda: calls.append("output.close"))

    failed = teardown.run(reason="transport_error")

    assert failed == ["capture.stop"]
    assert calls == ["output.close"]
    assert event_types(emitted).count("TEARDOWN_STEP_FAILED") == 1


def test_not_done_until_run():
    teardown = Teardown()
    assert teardown.done is False
