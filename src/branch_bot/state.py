from enum import StrEnum


class RunState(StrEnum):
    idle = "idle"
    pending_reported = "pending_reported"
    cloned = "cloned"
    prepared = "prepared"
    mutated = "mutated"
    committed = "committed"
    pushed = "pushed"
    success_reported = "success_reported"
    failure_reported = "failure_reported"
    cleaned_up = "cleaned_up"
    done = "done"
    done_error = "done_error"


TERMINAL_STATES = frozenset({RunState.done, RunState.done_error})
