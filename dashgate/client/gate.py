"""
Dashgate - Protected Route Gate

Decides what a protected view renders from the auth state machine:
- loading while the session is hydrating
- the protected content once authenticated
- a "sign in to continue" placeholder otherwise

Blocked visits open the auth modal on its first step.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from dashgate.client.state import AuthStateMachine, AuthStep, ModalStep


BLOCKED_TITLE = "Authentication Required"
BLOCKED_MESSAGE = "Please sign in to access this page."


class GateOutcome(str, Enum):
    LOADING = "loading"
    CONTENT = "content"
    BLOCKED = "blocked"


@dataclass
class GateView:
    outcome: GateOutcome
    content: Optional[Any] = None
    title: Optional[str] = None
    message: Optional[str] = None


class ProtectedRouteGate:
    """Wraps protected content behind AuthStateMachine.is_authenticated."""

    def __init__(self, machine: AuthStateMachine):
        self.machine = machine

    def evaluate(self, content: Any = None) -> GateView:
        machine = self.machine

        if machine.step == AuthStep.HYDRATING:
            return GateView(outcome=GateOutcome.LOADING)

        if machine.is_authenticated:
            machine.close_auth_modal()
            return GateView(outcome=GateOutcome.CONTENT, content=content)

        if not machine.modal_open:
            machine.open_auth_modal(ModalStep.CHOOSE)
        return GateView(
            outcome=GateOutcome.BLOCKED,
            title=BLOCKED_TITLE,
            message=BLOCKED_MESSAGE,
        )
