"""Ordered multi-step execution with best-effort compensation.

A CompensationChain runs a list of steps. Each step may declare a
compensation that reverses the resource its action created. When a step
fails, the chain walks back through the completed steps that have a
compensation, newest first, and runs at most ``depth`` of them. The caller
always gets the original error; compensation errors are logged and collected.

This is not a transaction. A failed compensation leaves the resource behind
for out-of-band reconciliation; it is never retried.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from oslo_log import log as logging

from .exceptions import BackendFailure, IboxCSIException

LOG = logging.getLogger(__name__)

StepCallable = Callable[[Dict[str, Any]], Any]


@dataclass
class Step:
    """A single chain step.

    Attributes:
        name: Step name; the action result is stored in state under this key
        action: Callable receiving the shared state dict
        compensation: Optional callable reversing the action's resource
    """

    name: str
    action: StepCallable
    compensation: Optional[StepCallable] = None


@dataclass
class ChainResult:
    """Outcome of running a CompensationChain."""

    state: Dict[str, Any]
    completed: List[str] = field(default_factory=list)
    failed_step: Optional[str] = None
    error: Optional[Exception] = None
    compensated: List[str] = field(default_factory=list)
    compensation_errors: List[Tuple[str, Exception]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        """Re-raise the error that stopped the chain, if any."""
        if self.error is not None:
            raise self.error


class CompensationChain:
    """Runs steps in order and unwinds completed ones on failure."""

    def __init__(self, name: str, depth: Optional[int] = 1):
        """Initialize an empty chain.

        Args:
            name: Chain name used in log messages
            depth: Maximum number of compensations run on failure; None or 0
                unwinds every completed step that has a compensation
        """
        self.name = name
        self.depth = depth or None
        self.steps: List[Step] = []

    def add_step(
        self, name: str, action: StepCallable, compensation: Optional[StepCallable] = None
    ) -> "CompensationChain":
        self.steps.append(Step(name=name, action=action, compensation=compensation))
        return self

    def run(self, state: Optional[Dict[str, Any]] = None) -> ChainResult:
        """Execute the steps.

        Unexpected exceptions raised by an action are converted into
        BackendFailure at the step boundary so compensation still runs.

        Args:
            state: Initial shared state passed to every callable

        Returns:
            ChainResult describing what completed, failed and was unwound
        """
        result = ChainResult(state=state if state is not None else {})
        completed_steps: List[Step] = []

        for step in self.steps:
            LOG.debug("%s: running step %s", self.name, step.name)
            try:
                result.state[step.name] = step.action(result.state)
            except IboxCSIException as e:
                LOG.error("%s: step %s failed: %s", self.name, step.name, e)
                result.error = e
            except Exception as e:
                LOG.exception("%s: unexpected error in step %s", self.name, step.name)
                error = BackendFailure(details=f"unexpected error in step {step.name}: {e}")
                error.__cause__ = e
                result.error = error

            if result.error is not None:
                result.failed_step = step.name
                self._compensate(completed_steps, result)
                return result

            completed_steps.append(step)
            result.completed.append(step.name)

        return result

    def _compensate(self, completed_steps: List[Step], result: ChainResult) -> None:
        reversible = [step for step in reversed(completed_steps) if step.compensation]
        if self.depth is not None:
            reversible = reversible[: self.depth]

        for step in reversible:
            LOG.info("%s: reverting step %s after failure of %s", self.name, step.name, result.failed_step)
            try:
                step.compensation(result.state)
                result.compensated.append(step.name)
            except Exception as e:
                # The resource is orphaned; the original error still wins.
                LOG.error(
                    "%s: failed to revert step %s, resource left behind: %s",
                    self.name,
                    step.name,
                    e,
                )
                result.compensation_errors.append((step.name, e))
