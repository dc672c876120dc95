import pytest

from shipctl.errors import ConfigurationError, NotReadyError, PhaseError, PipelineCancelled
from shipctl.models import ConditionStatus
from shipctl.modules.provider.pipeline import Phase, PhaseContext, condition_report, run_phases


def _phases(calls, failing=None, error=None):
    def make(name):
        def func(ctx, *args):
            calls.append(name)
            if name == failing:
                raise error
        return func

    return [Phase(name, make(name), benign=(NotReadyError,)) for name in ("One", "Two", "Three")]


def test_all_phases_succeed():
    calls, conditions = [], []
    run_phases(_phases(calls), PhaseContext(), conditions)
    assert calls == ["One", "Two", "Three"]
    assert [(c.type, c.status, c.reason) for c in conditions] == [
        ("One", ConditionStatus.TRUE, "Succeeded"),
        ("Two", ConditionStatus.TRUE, "Succeeded"),
        ("Three", ConditionStatus.TRUE, "Succeeded"),
    ]


def test_first_failure_stops_the_pass():
    calls, conditions = [], []
    with pytest.raises(ConfigurationError) as exc:
        run_phases(_phases(calls, "Two", ConfigurationError("bad cidr")), PhaseContext(), conditions, host="10.0.0.11")
    assert calls == ["One", "Two"]
    assert exc.value.phase == "Two"
    assert exc.value.host == "10.0.0.11"
    assert str(exc.value) == "[phase=Two host=10.0.0.11] bad cidr"
    assert conditions[-1].status == ConditionStatus.FALSE
    assert conditions[-1].reason == "ConfigurationError"


def test_foreign_exception_is_wrapped():
    calls, conditions = [], []
    with pytest.raises(PhaseError) as exc:
        run_phases(_phases(calls, "One", KeyError("missing")), PhaseContext(), conditions)
    assert isinstance(exc.value.cause, KeyError)
    assert exc.value.phase == "One"


def test_benign_error_is_recorded_as_skipped():
    calls, conditions = [], []
    run_phases(_phases(calls, "Two", NotReadyError("api down")), PhaseContext(), conditions)
    assert calls == ["One", "Two", "Three"]
    assert conditions[1].reason == "Skipped"
    assert conditions[1].status == ConditionStatus.TRUE


def test_cancelled_context_runs_nothing():
    calls, conditions = [], []
    ctx = PhaseContext()
    ctx.cancel.set()
    with pytest.raises(PipelineCancelled) as exc:
        run_phases(_phases(calls), ctx, conditions)
    assert calls == []
    assert exc.value.phase == "One"


def test_deadline_in_the_past_cancels():
    now = [100.0]
    ctx = PhaseContext(deadline=50.0, clock=lambda: now[0])
    assert ctx.cancelled()
    assert ctx.wait(10) is True


def test_with_timeout():
    ctx = PhaseContext.with_timeout(30, reset=True)
    assert 0 < ctx.remaining() <= 30
    assert ctx.options == {"reset": True}
    assert PhaseContext.with_timeout(None).remaining() is None


def test_transition_time_kept_while_status_unchanged():
    calls, conditions = [], []
    run_phases(_phases(calls), PhaseContext(), conditions)
    first = conditions[0].last_transition_time
    run_phases(_phases(calls), PhaseContext(), conditions)
    assert conditions[0].last_transition_time == first
    assert len(conditions) == 3


def test_condition_report_marks_unrun_steps():
    calls, conditions = [], []
    with pytest.raises(ConfigurationError):
        run_phases(_phases(calls, "One", ConfigurationError("x")), PhaseContext(), conditions)
    report = condition_report(conditions, ["One", "Two", "Three"])
    assert [(c.type, c.status.value) for c in report] == [
        ("One", "False"), ("Two", "Unknown"), ("Three", "Unknown"),
    ]
    assert report[1].reason == "NotRun"
