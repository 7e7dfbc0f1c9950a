"""Transaction State Machine Guard.

Uses python-statemachine to enforce legal status changes on one party's
transaction record. Each side of a barter owns its own record, so the
machine is instantiated per record and validated before the record's status
field is rewritten.

Transition table:
    offered -> completed   (complete)
    offered -> rejected    (reject)

Both terminal states are final. Withdrawing an unanswered offer deletes the
record instead of transitioning it.
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from sticker_exchange.domain.exceptions import InvalidStateTransitionError


class TransactionStateMachine(StateMachine):
    """State machine that guards a transaction record's status.

    Usage:
        sm = TransactionStateMachine(current_status="offered")
        sm.complete()  # transitions to completed
        sm.status      # "completed"
    """

    # --- States ---
    offered = State("Offered", value="offered", initial=True)
    completed = State("Completed", value="completed", final=True)
    rejected = State("Rejected", value="rejected", final=True)

    # --- Events / Transitions ---
    complete = offered.to(completed)
    reject = offered.to(rejected)

    def __init__(self, current_status: str = "offered") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: A TransactionStatus value (e.g., "offered").
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches TransactionStatus)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [_event_key(event) for event in self.allowed_events]


def _event_key(event) -> str:
    # Newer releases expose the attribute name as `id` and a label as `name`.
    return getattr(event, "id", None) or event.name


def validate_transition(current_status: str, event_name: str) -> str:
    """Validate a status change and return the new status.

    Args:
        current_status: Current TransactionStatus value.
        event_name: The event to fire ("complete" or "reject").

    Returns:
        The new status string after the transition.

    Raises:
        InvalidStateTransitionError: If the event is unknown or not allowed
            from the current status.
        ValueError: If the status is unknown.
    """
    sm = TransactionStateMachine(current_status=current_status)

    if event_name not in {_event_key(event) for event in sm.events}:
        raise InvalidStateTransitionError(current_status, event_name)
    event_method = getattr(sm, event_name)
    try:
        event_method()
    except TransitionNotAllowed as err:
        raise InvalidStateTransitionError(current_status, event_name) from err
    return sm.status
