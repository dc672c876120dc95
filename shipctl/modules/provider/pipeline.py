"""Ordered, fail-fast execution of provisioning phases."""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple, Type

from shipctl.errors import PhaseError, PipelineCancelled, ProvisionError
from shipctl.models import Condition, ConditionStatus, find_condition, set_condition

logger = logging.getLogger("shipctl.pipeline")


@dataclass
class Phase:
    """One idempotent step.

    ``benign`` exceptions end the phase as a successful no-op.
    """
    name: str
    func: Callable
    benign: Tuple[Type[BaseException], ...] = ()


@dataclass
class PhaseContext:
    """Per-pass options plus cancellation and an optional deadline."""
    cancel: threading.Event = field(default_factory=threading.Event)
    deadline: Optional[float] = None
    options: Dict[str, object] = field(default_factory=dict)
    clock: Callable[[], float] = time.monotonic

    @classmethod
    def with_timeout(cls, seconds: Optional[float], **options) -> "PhaseContext":
        ctx = cls(options=options)
        if seconds:
            ctx.deadline = ctx.clock() + seconds
        return ctx

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return self.deadline - self.clock()

    def cancelled(self) -> bool:
        remaining = self.remaining()
        return self.cancel.is_set() or (remaining is not None and remaining <= 0)

    def check(self) -> None:
        if self.cancelled():
            raise PipelineCancelled("pass cancelled or past its deadline")

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True if the pass was cancelled meanwhile."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, max(remaining, 0))
        self.cancel.wait(seconds)
        return self.cancelled()


def _record(conditions: List[Condition], name: str, status: ConditionStatus,
            reason: str = "", message: str = "") -> None:
    set_condition(conditions, Condition(type=name, status=status, reason=reason, message=message))


def run_phases(phases: List[Phase], ctx: PhaseContext, conditions: List[Condition], *args,
               host: Optional[str] = None) -> None:
    """Run ``phase.func(ctx, *args)`` for each phase in order.

    Each outcome is recorded on ``conditions``. The first failure is stamped
    with the phase name and host and re-raised; later phases do not run.

    Raises:
        ProvisionError: The first phase failure (foreign exceptions wrapped in PhaseError)
        PipelineCancelled: If the pass was cancelled between phases
    """
    where = f" on {host}" if host else ""
    for phase in phases:
        try:
            ctx.check()
        except PipelineCancelled as e:
            e.phase, e.host = phase.name, host
            raise
        logger.debug(f"▶️ {phase.name}{where}")
        try:
            phase.func(ctx, *args)
        except phase.benign as e:
            logger.info(f"↪️ {phase.name}{where} skipped: {e}")
            _record(conditions, phase.name, ConditionStatus.TRUE, reason="Skipped", message=str(e))
        except ProvisionError as e:
            e.phase = e.phase or phase.name
            e.host = e.host or host
            logger.error(f"❌ {phase.name}{where} failed: {e.message}")
            _record(conditions, phase.name, ConditionStatus.FALSE, reason=type(e).__name__, message=e.message)
            raise
        except Exception as e:
            wrapped = PhaseError(e, phase=phase.name, host=host)
            logger.error(f"❌ {phase.name}{where} failed: {wrapped.message}")
            _record(conditions, phase.name, ConditionStatus.FALSE, reason="PhaseError", message=wrapped.message)
            raise wrapped from e
        else:
            _record(conditions, phase.name, ConditionStatus.TRUE, reason="Succeeded")


def condition_report(conditions: List[Condition], steps: List[str]) -> List[Condition]:
    """Conditions ordered by ``steps``; steps that never ran are Unknown."""
    report = []
    for step in steps:
        found = find_condition(conditions, step)
        report.append(found if found else Condition(type=step, status=ConditionStatus.UNKNOWN,
                                                    reason="NotRun"))
    return report
