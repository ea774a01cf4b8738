"""
Error taxonomy for the visualization engine.

- InvalidParameters: input rejected before a Run exists (recoverable by the caller)
- InvalidStateError: controller or session misuse (rejected without side effects)
- ReducerContractError: a step that cannot be applied to its snapshot (producer bug, fatal)
"""

from typing import Any, Dict, Optional


class EngineError(Exception):
    """Base class for all engine errors."""


class InvalidParameters(EngineError):
    """Algorithm parameters or domain edits that cannot start a Run.

    Carries a machine-readable ``reason`` and the offending ``field`` so the
    caller can correct its input.
    """

    def __init__(self, reason: str, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason,
            "field": self.field,
            "message": self.message,
        }


class InvalidStateError(EngineError):
    """Operation not allowed in the controller's current state."""

    def __init__(self, message: str, status: Optional[str] = None):
        super().__init__(message)
        self.status = status


class ReducerContractError(EngineError):
    """A step does not fit the snapshot it is applied to.

    The step vocabulary is closed and versioned with the producers, so this
    always indicates a producer bug.
    """
