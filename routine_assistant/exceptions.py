"""Domain exceptions for the routine scheduling core."""


class RoutineValidationError(ValueError):
    """A routine definition was rejected at creation or edit time.

    The message is user-facing.
    """


class InvalidTransitionError(Exception):
    """An execution status change violates the forward-only state machine."""

    def __init__(self, execution_id: str, current: str, target: str):
        self.execution_id = execution_id
        self.current = current
        self.target = target
        super().__init__(
            f"Execution {execution_id} cannot move from '{current}' to '{target}'"
        )


class NotificationPermissionDenied(Exception):
    """The user has not granted permission to display notifications."""
