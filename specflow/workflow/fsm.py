"""Workflow step state machine using transitions library.

Each step (specify, plan, ...) moves forward only:

    pending -> in_progress -> completed
                           -> failed -> pending (explicit retry)

`complete` on a gated step is guarded by its gate: a FAIL verdict refuses
the transition.

Usage:
    from specflow.workflow.fsm import StepFSM

    fsm = StepFSM("plan", "in_progress", gate_check=lambda: result.passed)
    fsm.complete()  # False if the gate refused
"""

import logging
from typing import Callable, Optional

from transitions import Machine

from specflow.lib.state import STEP_STATUSES

logger = logging.getLogger(__name__)


STATES = list(STEP_STATUSES)

TRANSITIONS = [
    {"trigger": "start", "source": "pending", "dest": "in_progress"},

    {"trigger": "complete", "source": "pending", "dest": "completed", "conditions": "gate_allows"},
    {"trigger": "complete", "source": "in_progress", "dest": "completed", "conditions": "gate_allows"},

    {"trigger": "fail", "source": "in_progress", "dest": "failed"},

    # Only an operator returns a failed step to pending
    {"trigger": "retry", "source": "failed", "dest": "pending"},
]

TRIGGERS = ("start", "complete", "fail", "retry")


class StepFSM:
    """State machine for one workflow step.

    Holds no storage of its own: the caller reads the current status from
    the state document and persists the resulting status.
    """

    def __init__(
        self,
        step: str,
        status: str,
        gate_check: Optional[Callable[[], bool]] = None,
    ):
        """Initialize FSM for a step.

        Args:
            step: Step name (for logging)
            status: Current recorded status
            gate_check: Returns False to refuse `complete`; None means ungated
        """
        self.step = step
        self.gate_check = gate_check

        if status not in STATES:
            logger.warning(f"[STEP] {step}: Unknown status '{status}', treating as 'pending'")
            status = "pending"

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=status,
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def gate_allows(self, event) -> bool:
        if self.gate_check is None:
            return True
        allowed = self.gate_check()
        if not allowed:
            logger.info(f"[STEP] {self.step}: gate refused completion")
        return allowed

    def on_state_change(self, event) -> None:
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        logger.info(f"[STEP] {self.step}: {from_state} -> {to_state} ({trigger})")

    def can(self, trigger: str) -> bool:
        """Check if a trigger exists for the current state (ignores guards)."""
        return trigger in self.machine.get_triggers(self.state)

    def get_available_triggers(self) -> list[str]:
        return self.machine.get_triggers(self.state)
