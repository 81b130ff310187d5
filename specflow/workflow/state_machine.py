"""Step transitions persisted through the state store.

Thin layer over the FSM in fsm.py:
- StepStatus enum for type safety
- advance_step() evaluates the gate, runs the trigger, and writes the
  result in one state update

Usage:
    from specflow.workflow.state_machine import advance_step

    advance_step(store, paths, profile, "plan", "complete")
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from specflow.lib.config import ProjectPaths, ProjectProfile, active_feature_dir, relative_to_root
from specflow.lib.state import STEP_NAMES, StateStore, WorkflowState, iso_timestamp
from specflow.lib.inspector import count_checkboxes
from specflow.workflow.fsm import TRANSITIONS, TRIGGERS, StepFSM
from specflow.workflow.gates import GATES, GateResult, evaluate_gate

logger = logging.getLogger(__name__)


class StepStatus(Enum):
    """All valid step statuses. Values match FSM state strings."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class InvalidTransition(Exception):
    """Raised when a trigger is not allowed from the step's current status."""

    def __init__(self, step: str, from_state: str, trigger: str):
        self.step = step
        self.from_state = from_state
        self.trigger = trigger
        super().__init__(f"Invalid transition: cannot '{trigger}' step '{step}' from {from_state}")


class GateBlocked(Exception):
    """Raised when a gate refuses `complete`."""

    def __init__(self, result: GateResult):
        self.result = result
        super().__init__(
            f"Gate '{result.gate}' blocked completion: {result.verdict.value} "
            f"({result.errors} errors, {result.warnings} warnings)"
        )


@dataclass
class StepOutcome:
    step: str
    from_state: str
    to_state: str
    trigger: str
    gate: Optional[GateResult] = None
    changed: bool = True

    def to_dict(self) -> dict:
        return {
            "step": self.step,
            "from": self.from_state,
            "to": self.to_state,
            "trigger": self.trigger,
            "changed": self.changed,
            "gate": self.gate.to_dict() if self.gate else None,
        }


def _trigger_targets(trigger: str) -> set[str]:
    return {t["dest"] for t in TRANSITIONS if t["trigger"] == trigger}


def _record(state: WorkflowState, step: str, to_state: str, trigger: str, artifact: Optional[str],
            tasks: Optional[tuple[int, int]]) -> None:
    step_state = state.step(step)
    step_state.status = to_state
    if to_state == StepStatus.COMPLETED.value:
        step_state.completed_at = iso_timestamp()
    elif trigger == "retry":
        step_state.completed_at = None
    if artifact and artifact not in step_state.artifacts:
        step_state.artifacts.append(artifact)
    if tasks is not None:
        step_state.tasks_completed, step_state.tasks_total = tasks
    state.orchestration.step = step


def advance_step(
    store: StateStore,
    paths: ProjectPaths,
    profile: ProjectProfile,
    step: str,
    trigger: str,
    strict: bool = False,
    skip_tests: bool = False,
) -> StepOutcome:
    """Apply a trigger to a step and persist the new status.

    Raises:
        KeyError: unknown step or trigger
        InvalidTransition: trigger not allowed from the current status
        GateBlocked: `complete` refused by the step's gate
        WriteError: state could not be written
    """
    if step not in STEP_NAMES:
        raise KeyError(f"Unknown step: {step}")
    if trigger not in TRIGGERS:
        raise KeyError(f"Unknown trigger: {trigger}")

    state = store.load()
    current = state.step(step).status

    if current in _trigger_targets(trigger):
        logger.debug(f"[STEP] {step}: already {current}, no-op")
        return StepOutcome(step=step, from_state=current, to_state=current, trigger=trigger, changed=False)

    feature_dir = active_feature_dir(paths, state)
    gate_result: Optional[GateResult] = None

    def check_gate() -> bool:
        nonlocal gate_result
        gate_result = evaluate_gate(step, feature_dir, paths, profile, strict=strict, skip_tests=skip_tests)
        return gate_result.passed

    fsm = StepFSM(step, current, gate_check=check_gate if step in GATES else None)
    if not fsm.can(trigger):
        raise InvalidTransition(step, current, trigger)

    if not getattr(fsm, trigger)():
        raise GateBlocked(gate_result)

    recorded = None
    tasks = None
    if step in GATES and feature_dir is not None:
        artifact = feature_dir / GATES[step].artifact
        if artifact.is_file():
            recorded = relative_to_root(paths, artifact)
            if step == "implement":
                tasks = count_checkboxes(artifact)

    store.update(lambda s: _record(s, step, fsm.state, trigger, recorded, tasks))
    return StepOutcome(step=step, from_state=current, to_state=fsm.state, trigger=trigger, gate=gate_result)
