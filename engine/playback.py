"""
Playback controller and scheduler.

The controller is a state machine over one materialized Run:

    idle -> (load) -> paused <-> running -> finished
    any non-idle state -> cancelled;  reset() -> idle

It owns the current index, the speed and a bounded checkpoint cache, and
publishes a Frame to its subscribers on every index change. Time only enters
through ``tick(now)``; PlaybackScheduler is the asyncio task that calls it.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .errors import InvalidStateError, ReducerContractError
from .reducers import reduce
from .registry import AlgorithmRequest, Run

logger = logging.getLogger(__name__)


class PlaybackStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    FINISHED = "finished"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Frame:
    """What subscribers receive: the step that produced ``snapshot``.

    ``step`` is None for index -1, the initial snapshot.
    """

    run_id: str
    index: int
    step: Any
    snapshot: Any
    status: PlaybackStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "index": self.index,
            "step": self.step.to_dict() if self.step is not None else None,
            "snapshot": self.snapshot.to_dict(),
            "status": self.status.value,
        }


Subscriber = Callable[[Frame], None]


class PlaybackController:
    """Drives one Run at a time. Not thread-safe; use from one event loop."""

    def __init__(
        self,
        base_interval_ms: float = 100,
        speed: float = 1.0,
        min_speed: float = 0.5,
        max_speed: float = 4.0,
        checkpoint_interval: int = 64,
        max_checkpoints: int = 256,
        max_catch_up: int = 8,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_interval_ms = base_interval_ms
        self.min_speed = min_speed
        self.max_speed = max_speed
        self.checkpoint_interval = checkpoint_interval
        self.max_checkpoints = max_checkpoints
        self.max_catch_up = max(1, max_catch_up)
        self.clock = clock

        self._speed = self._clamp_speed(speed)
        self._status = PlaybackStatus.IDLE
        self._run: Optional[Run] = None
        self._index = -1
        self._snapshot: Any = None
        self._frame: Optional[Frame] = None
        self._checkpoints: Dict[int, Any] = {}
        self._stride: Optional[int] = None
        self._next_due: Optional[float] = None
        self._subscribers: List[Subscriber] = []
        self.last_request: Optional[AlgorithmRequest] = None
        self.error: Optional[str] = None

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def status(self) -> PlaybackStatus:
        return self._status

    @property
    def run(self) -> Optional[Run]:
        return self._run

    @property
    def index(self) -> int:
        return self._index

    @property
    def speed(self) -> float:
        return self._speed

    @property
    def interval(self) -> float:
        """Seconds between ticks at the current speed."""
        return self.base_interval_ms / 1000.0 / self._speed

    @property
    def next_due(self) -> Optional[float]:
        return self._next_due

    @property
    def current_frame(self) -> Optional[Frame]:
        """Last published frame; stays readable after cancel."""
        return self._frame

    @property
    def total_steps(self) -> int:
        return len(self._run) if self._run is not None else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self._status.value,
            "run_id": self._run.run_id if self._run else None,
            "index": self._index,
            "total_steps": self.total_steps,
            "speed": self._speed,
            "error": self.error,
        }

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _publish(self) -> Frame:
        step = self._run.steps[self._index] if self._index >= 0 else None
        frame = Frame(self._run.run_id, self._index, step, self._snapshot, self._status)
        self._frame = frame
        for callback in list(self._subscribers):
            try:
                callback(frame)
            except Exception:
                logger.exception("Playback subscriber failed on frame %d", frame.index)
        return frame

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    def load(self, run: Run) -> Frame:
        """Take ownership of ``run`` and publish its initial snapshot, paused."""
        if self._status in (PlaybackStatus.RUNNING, PlaybackStatus.PAUSED):
            self.cancel()
        self._run = run
        self.last_request = run.request
        self.error = None
        self._index = -1
        self._snapshot = run.initial
        self._checkpoints = {}
        self._next_due = None
        if self.checkpoint_interval > 0:
            self._stride = max(self.checkpoint_interval, math.ceil(len(run) / max(1, self.max_checkpoints)))
        else:
            self._stride = None
        self._status = PlaybackStatus.FINISHED if len(run) == 0 else PlaybackStatus.PAUSED
        logger.debug("Loaded run %s (%d steps)", run.run_id, len(run))
        return self._publish()

    def play(self) -> None:
        if self._status == PlaybackStatus.RUNNING:
            return
        self._require(PlaybackStatus.PAUSED, action="play")
        self._status = PlaybackStatus.RUNNING
        self._next_due = self.clock() + self.interval
        logger.debug("Playing run %s from %d", self._run.run_id, self._index)

    def pause(self) -> None:
        if self._status == PlaybackStatus.PAUSED:
            return
        self._require(PlaybackStatus.RUNNING, action="pause")
        self._status = PlaybackStatus.PAUSED
        self._next_due = None

    def tick(self, now: Optional[float] = None) -> List[Frame]:
        """Advance every step that is due at ``now``, at most ``max_catch_up``.

        Returns the frames published by this tick.
        """
        if self._status != PlaybackStatus.RUNNING:
            return []
        now = self.clock() if now is None else now
        if self._next_due is None:
            self._next_due = now + self.interval
            return []

        frames = []
        while (
            self._status == PlaybackStatus.RUNNING
            and now >= self._next_due
            and len(frames) < self.max_catch_up
        ):
            frames.append(self._go_to(self._index + 1))
            self._next_due += self.interval
        if self._status == PlaybackStatus.RUNNING and now >= self._next_due:
            # Backlog beyond the catch-up bound is dropped as time, never as steps
            self._next_due = now + self.interval
        if self._status != PlaybackStatus.RUNNING:
            self._next_due = None
        return frames

    def step_forward(self) -> Frame:
        self._pause_for_manual()
        self._require(PlaybackStatus.PAUSED, action="step forward")
        return self._go_to(self._index + 1)

    def step_backward(self) -> Frame:
        """Replay up to the previous index; at the initial snapshot this is a no-op."""
        self._pause_for_manual()
        self._require(PlaybackStatus.PAUSED, action="step backward")
        if self._index < 0:
            return self._frame
        return self._go_to(self._index - 1)

    def seek(self, index: int) -> Frame:
        self._pause_for_manual()
        self._require(PlaybackStatus.PAUSED, action="seek")
        target = min(max(index, 0), len(self._run) - 1)
        return self._go_to(target)

    def set_speed(self, multiplier: float) -> float:
        """Clamp and apply a speed multiplier; effective from the next tick."""
        self._speed = self._clamp_speed(multiplier)
        return self._speed

    def reset(self) -> None:
        """Back to idle; the last request stays available for a fresh Run."""
        self._release()
        self._status = PlaybackStatus.IDLE
        self._frame = None
        self.error = None

    def cancel(self) -> None:
        """Stop the Run for good. Idempotent; publishes nothing."""
        if self._status in (PlaybackStatus.IDLE, PlaybackStatus.CANCELLED):
            return
        run_id = self._run.run_id if self._run else None
        self._release()
        self._status = PlaybackStatus.CANCELLED
        logger.debug("Cancelled run %s", run_id)

    def snapshot_at(self, index: int):
        """Read-only projection of any index of the loaded Run."""
        if self._run is None:
            raise InvalidStateError("No run loaded", self._status.value)
        if not -1 <= index < len(self._run):
            raise InvalidStateError(f"Index {index} outside -1..{len(self._run) - 1}", self._status.value)
        return self._project(index)

    def deep_link(self) -> Dict[str, Any]:
        if self.last_request is None:
            raise InvalidStateError("Nothing has been run yet", self._status.value)
        return {**self.last_request.to_dict(), "index": self._index}

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _clamp_speed(self, multiplier: float) -> float:
        return min(max(float(multiplier), self.min_speed), self.max_speed)

    def _require(self, status: PlaybackStatus, action: str) -> None:
        if self._status != status:
            raise InvalidStateError(f"Cannot {action} while {self._status.value}", self._status.value)

    def _pause_for_manual(self) -> None:
        if self._status == PlaybackStatus.RUNNING:
            self.pause()

    def _release(self) -> None:
        self._run = None
        self._snapshot = None
        self._checkpoints = {}
        self._next_due = None
        self._index = -1

    def _remember(self, index: int, snapshot: Any) -> None:
        if self._stride is not None and index >= 0 and index % self._stride == 0:
            self._checkpoints[index] = snapshot

    def _project(self, index: int):
        """Fold from the nearest checkpoint at or below ``index``."""
        if index == self._index:
            return self._snapshot
        start = max((i for i in self._checkpoints if i <= index), default=-1)
        snapshot = self._checkpoints[start] if start >= 0 else self._run.initial
        for i in range(start + 1, index + 1):
            snapshot = self._reduce(snapshot, i)
            self._remember(i, snapshot)
        return snapshot

    def _reduce(self, snapshot: Any, index: int):
        try:
            return reduce(snapshot, self._run.steps[index])
        except ReducerContractError as exc:
            self._halt(index, exc)
            raise

    def _halt(self, index: int, exc: ReducerContractError) -> None:
        run_id = self._run.run_id if self._run else None
        logger.error("Run %s halted at step %d: %s", run_id, index, exc)
        self.error = str(exc)
        self._release()
        self._status = PlaybackStatus.CANCELLED

    def _go_to(self, index: int) -> Frame:
        if index == self._index + 1:
            snapshot = self._reduce(self._snapshot, index)
            self._remember(index, snapshot)
        else:
            snapshot = self._project(index)
        self._index = index
        self._snapshot = snapshot
        if index == len(self._run) - 1:
            self._status = PlaybackStatus.FINISHED
            self._next_due = None
        return self._publish()


class PlaybackScheduler:
    """The single logical timer of one controller.

    Runs as an asyncio task while the controller is running and exits as soon
    as it is not. ``sleep`` and the controller's clock are injectable so tests
    can drive time by hand.
    """

    def __init__(
        self,
        controller: PlaybackController,
        sleep: Callable[[float], Any] = asyncio.sleep,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.controller = controller
        self._sleep = sleep
        self._on_error = on_error
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Start ticking; a no-op while a previous task is still alive."""
        if not self.active:
            self._task = asyncio.get_running_loop().create_task(self._loop())
        return self._task

    def stop(self) -> None:
        if self.active:
            self._task.cancel()
        self._task = None

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    async def _loop(self) -> None:
        controller = self.controller
        while controller.status == PlaybackStatus.RUNNING:
            due = controller.next_due
            now = controller.clock()
            if due is not None and due > now:
                await self._sleep(due - now)
                continue
            try:
                controller.tick(now)
            except ReducerContractError as exc:
                if self._on_error is not None:
                    self._on_error(exc)
                return
