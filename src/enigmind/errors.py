"""
Error taxonomy for the enigmind constraint engine.

Every exception raised on purpose by the engine derives from EnigmindError,
so callers (a transport layer, the CLI) can catch one type.
"""

from typing import Optional


class EnigmindError(Exception):
    """Base class for every engine error."""


class InvalidParameters(EnigmindError):
    """Base/column count out of range, or a malformed configuration value."""


class InvalidCode(InvalidParameters):
    """A submitted code does not belong to the session's Code Space."""


class SpaceTooLarge(EnigmindError):
    """B^N exceeds the configured enumeration ceiling."""

    def __init__(self, size: int, ceiling: int):
        self.size = size
        self.ceiling = ceiling
        super().__init__(
            f"Code space of {size} codes exceeds the enumeration ceiling of {ceiling}"
        )


class GenerationExhausted(EnigmindError):
    """No uniquely-determining rule set was found within the attempt budget.

    Retryable: the caller may try again, possibly with an easier difficulty.
    """

    def __init__(self, attempts: int, reason: Optional[str] = None):
        self.attempts = attempts
        self.reason = reason
        msg = f"Unable to build a unique rule set after {attempts} attempt(s)"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class InternalInvariantViolation(EnigmindError):
    """Uniqueness or soundness check failed. Not retryable."""


class UnknownRuleSet(EnigmindError):
    """The rule set was not issued by this engine, or has been released."""


class UnknownSession(EnigmindError):
    """The session id does not exist or the session has expired."""


class InvalidTransition(EnigmindError):
    """A session operation was called in a state that does not allow it."""

    def __init__(self, operation: str, state: str):
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while session is {state}")
