"""
Algorithm visualization engine.

Step producers turn an algorithm request into an immutable step sequence,
the reducer projects any prefix of it onto a snapshot, and the playback
controller walks that sequence under user-controlled time.
"""

from .errors import EngineError, InvalidParameters, InvalidStateError, ReducerContractError
from .playback import Frame, PlaybackController, PlaybackScheduler, PlaybackStatus
from .reducers import reduce, replay
from .registry import CATALOG, AlgorithmRequest, Run, create_run
from .steps import Family
from .validation import Limits

__all__ = [
    "AlgorithmRequest",
    "CATALOG",
    "EngineError",
    "Family",
    "Frame",
    "InvalidParameters",
    "InvalidStateError",
    "Limits",
    "PlaybackController",
    "PlaybackScheduler",
    "PlaybackStatus",
    "ReducerContractError",
    "Run",
    "create_run",
    "reduce",
    "replay",
]
