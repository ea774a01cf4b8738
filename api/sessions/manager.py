"""
Session manager for the AlgoViz backend.

A session is one active visualization: an algorithm family, the editable
domain (array, grid, tree or graph parameters), and its own playback
controller and scheduler. There is no process-wide playback state.

Every controller frame and status change is pushed to the session's
WebSocket channel from the event loop that owns the controller.
"""

import asyncio
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Coroutine, Deque, Dict, List, Optional

from engine import (
    AlgorithmRequest,
    Family,
    Frame,
    InvalidParameters,
    InvalidStateError,
    PlaybackController,
    PlaybackScheduler,
    PlaybackStatus,
    ReducerContractError,
    Run,
    create_run,
)
from engine.models.grid import CellType
from engine.models.maze import MAZE_GENERATORS
from engine.producers.tree import build_tree
from engine.registry import parse_family, parse_structure
from engine.validation import (
    ORDERINGS,
    check_tree_operation,
    generate_balanced_keys,
    parse_array,
    parse_coord,
    parse_graph,
    parse_grid,
    parse_seed,
    parse_tree_keys,
)

from ..app_config import PlaybackSettings, get_settings
from ..shared.logger import get_logger

logger = get_logger(__name__)

# Domain edits are only accepted while no Run is in progress
EDITABLE_STATES = (PlaybackStatus.IDLE, PlaybackStatus.FINISHED, PlaybackStatus.CANCELLED)

DEFAULT_DOMAINS: Dict[Family, Dict[str, Any]] = {
    Family.SORTING: {"size": 16, "ordering": "random", "seed": 0},
    Family.PATHFINDING: {"rows": 15, "cols": 25, "start": [7, 3], "end": [7, 21]},
    Family.TREE: {"structure": "bst", "keys": [50, 30, 70, 20, 40, 60, 80]},
    Family.GRAPH: {
        "vertices": ["A", "B", "C", "D", "E"],
        "edges": [
            {"source": "A", "target": "B", "weight": 4},
            {"source": "A", "target": "C", "weight": 1},
            {"source": "B", "target": "C", "weight": 2},
            {"source": "B", "target": "D", "weight": 5},
            {"source": "C", "target": "D", "weight": 8},
            {"source": "D", "target": "E", "weight": 3},
        ],
        "directed": False,
    },
}


@dataclass
class Session:
    """One visualization and the controller that plays it."""

    id: str
    family: Family
    domain: Dict[str, Any]
    controller: PlaybackController
    scheduler: PlaybackScheduler
    created_at: datetime
    last_active: datetime
    last_status: PlaybackStatus = PlaybackStatus.IDLE
    unsubscribe: Optional[Callable[[], None]] = field(default=None, repr=False)
    # Notifications not yet sent, drained in order by the courier task
    outbox: Deque[Coroutine] = field(default_factory=deque, repr=False)
    courier: Optional[asyncio.Task] = field(default=None, repr=False)

    def touch(self) -> None:
        self.last_active = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        run = self.controller.run
        return {
            "id": self.id,
            "family": self.family.value,
            "domain": self.domain,
            "created_at": self.created_at.isoformat(),
            "last_active": self.last_active.isoformat(),
            "playback": self.controller.to_dict(),
            "run": run.to_dict() if run is not None else None,
            "last_request": (
                self.controller.last_request.to_dict() if self.controller.last_request is not None else None
            ),
        }


def normalize_domain(family: Family, domain: Dict[str, Any], limits: PlaybackSettings) -> Dict[str, Any]:
    """Validate ``domain`` and return its canonical, JSON-ready form."""
    if family == Family.SORTING:
        return {"values": list(parse_array(domain, limits))}
    if family == Family.PATHFINDING:
        return parse_grid(domain, limits).to_dict()
    if family == Family.TREE:
        structure = parse_structure(domain)
        keys = parse_tree_keys(domain, limits)
        return {"structure": structure, "keys": keys}
    return parse_graph(domain, limits).to_dict()


class SessionManager:
    """
    Owns every session of the process.

    The registry is guarded by a lock; playback itself runs on the event
    loop that issued the intents.
    """

    def __init__(self, settings_provider: Callable[[], PlaybackSettings] = get_settings):
        self._settings_provider = settings_provider
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending: set = set()

    @property
    def settings(self) -> PlaybackSettings:
        return self._settings_provider()

    # ============= Registry =============

    def create_session(self, family: Any, domain: Optional[Dict[str, Any]] = None) -> Session:
        """Create a session for ``family``; a missing domain gets the family default."""
        family = parse_family(family)
        settings = self.settings
        self.cleanup_old_sessions(settings.session_max_age_hours)

        canonical = normalize_domain(family, domain if domain is not None else DEFAULT_DOMAINS[family], settings)
        controller = PlaybackController(**settings.controller_kwargs())
        now = datetime.now()
        session = Session(
            id=f"session_{uuid.uuid4().hex[:8]}",
            family=family,
            domain=canonical,
            controller=controller,
            scheduler=PlaybackScheduler(controller, on_error=lambda exc: self._on_failure(session, exc)),
            created_at=now,
            last_active=now,
        )
        session.unsubscribe = controller.subscribe(lambda frame: self._on_frame(session, frame))

        with self._lock:
            self._sessions[session.id] = session

        logger.info("Created %s session %s", family.value, session.id)
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def list_sessions(self, family: Optional[Family] = None, limit: int = 50) -> List[Session]:
        with self._lock:
            sessions = list(self._sessions.values())

        if family is not None:
            sessions = [s for s in sessions if s.family == family]

        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return sessions[:limit]

    def delete_session(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        self._close(session)
        logger.info("Deleted session %s", session_id)
        return True

    def cleanup_old_sessions(self, max_age_hours: float = 24) -> int:
        """Remove sessions idle for longer than ``max_age_hours`` that are not playing."""
        now = datetime.now()
        with self._lock:
            stale = [
                s
                for s in self._sessions.values()
                if s.controller.status != PlaybackStatus.RUNNING
                and (now - s.last_active).total_seconds() / 3600 > max_age_hours
            ]
            for session in stale:
                del self._sessions[session.id]

        for session in stale:
            self._close(session)
        if stale:
            logger.info("Removed %d stale sessions", len(stale))
        return len(stale)

    def shutdown(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            self._close(session)

    def _close(self, session: Session) -> None:
        session.scheduler.stop()
        session.controller.cancel()
        if session.unsubscribe is not None:
            session.unsubscribe()
            session.unsubscribe = None

    # ============= Domain edits =============

    def _check_editable(self, session: Session, action: str) -> None:
        status = session.controller.status
        if status not in EDITABLE_STATES:
            logger.warning("Rejected %s on session %s while %s", action, session.id, status.value)
            raise InvalidStateError(
                f"Cannot {action} while playback is {status.value}; cancel or reset first",
                status.value,
            )

    def _commit_domain(self, session: Session, domain: Dict[str, Any]) -> Dict[str, Any]:
        session.domain = domain
        session.scheduler.stop()
        session.controller.reset()
        session.touch()
        self._sync_status(session)
        return domain

    def replace_domain(self, session: Session, domain: Dict[str, Any]) -> Dict[str, Any]:
        self._check_editable(session, "replace the domain")
        return self._commit_domain(session, normalize_domain(session.family, domain, self.settings))

    def _require_family(self, session: Session, family: Family, action: str) -> None:
        if session.family != family:
            raise InvalidParameters(
                "unsupported-operation",
                f"{action} needs a {family.value} session, not {session.family.value}",
                "family",
            )

    def _grid(self, session: Session):
        return parse_grid(session.domain, self.settings)

    def toggle_wall(self, session: Session, cell: Any) -> Dict[str, Any]:
        self._require_family(session, Family.PATHFINDING, "Wall toggling")
        self._check_editable(session, "toggle a wall")
        grid = self._grid(session)
        coord = parse_coord(cell, "cell")
        if not grid.in_bounds(coord):
            raise InvalidParameters("out-of-bounds", f"Cell {list(coord)} is outside the grid", "cell")
        if grid.cell_type(coord) in (CellType.START, CellType.END):
            raise InvalidParameters("endpoint-is-wall", "Start and end cells cannot become walls", "cell")
        return self._commit_domain(session, grid.with_wall_toggled(coord).to_dict())

    def set_endpoints(self, session: Session, start: Any = None, end: Any = None) -> Dict[str, Any]:
        """Move start and/or end; a wall under the new endpoint is cleared."""
        self._require_family(session, Family.PATHFINDING, "Moving endpoints")
        self._check_editable(session, "move the endpoints")
        grid = self._grid(session)
        new_start = parse_coord(start, "start") if start is not None else None
        new_end = parse_coord(end, "end") if end is not None else None
        moved = grid.with_endpoints(new_start, new_end)
        return self._commit_domain(session, parse_grid(moved.to_dict(), self.settings).to_dict())

    def set_weight(self, session: Session, cell: Any, weight: float) -> Dict[str, Any]:
        self._require_family(session, Family.PATHFINDING, "Cell weights")
        self._check_editable(session, "change a weight")
        grid = self._grid(session)
        coord = parse_coord(cell, "cell")
        weighted = grid.with_weight(coord, weight)
        return self._commit_domain(session, parse_grid(weighted.to_dict(), self.settings).to_dict())

    def generate_maze(
        self,
        session: Session,
        generator: str,
        seed: Any = 0,
        density: Optional[float] = None,
    ) -> Dict[str, Any]:
        self._require_family(session, Family.PATHFINDING, "Maze generation")
        self._check_editable(session, "generate a maze")
        if generator not in MAZE_GENERATORS:
            raise InvalidParameters("invalid-value", f"Unknown maze generator '{generator}'", "generator")
        grid = self._grid(session)
        seed = parse_seed({"seed": seed})
        if generator == "random-noise" and density is not None:
            if not 0 <= density <= 1:
                raise InvalidParameters("out-of-bounds", "'density' must lie within 0..1", "density")
            maze = MAZE_GENERATORS[generator](grid, seed, density=density)
        else:
            maze = MAZE_GENERATORS[generator](grid, seed)
        logger.debug("Generated %s maze for session %s (seed %d)", generator, session.id, seed)
        return self._commit_domain(session, maze.to_dict())

    def randomize_array(self, session: Session, size: int, ordering: str = "random", seed: Any = 0) -> Dict[str, Any]:
        self._require_family(session, Family.SORTING, "Array generation")
        self._check_editable(session, "generate an array")
        if ordering not in ORDERINGS:
            raise InvalidParameters("invalid-value", f"Unknown ordering '{ordering}'", "ordering")
        values = parse_array({"size": size, "ordering": ordering, "seed": seed}, self.settings)
        return self._commit_domain(session, {"values": list(values)})

    def generate_balanced_tree(self, session: Session, count: int, seed: Any = 0) -> Dict[str, Any]:
        """Replace the construction sequence with seeded keys in median-first order."""
        self._require_family(session, Family.TREE, "Tree generation")
        self._check_editable(session, "generate a tree")
        keys = generate_balanced_keys(count, parse_seed({"seed": seed}), self.settings)
        logger.debug("Generated %d balanced keys for session %s", len(keys), session.id)
        return self._commit_domain(session, {"structure": session.domain["structure"], "keys": keys})

    def edit_tree(self, session: Session, action: str, key: Any) -> Dict[str, Any]:
        """Insert or remove a key in the tree's construction sequence.

        The tree is rebuilt from the edited sequence, so AVL and splay shapes
        are those of inserting the remaining keys in order.
        """
        self._require_family(session, Family.TREE, "Tree editing")
        self._check_editable(session, f"{action} a tree key")
        settings = self.settings
        structure = session.domain["structure"]
        keys = list(session.domain["keys"])

        if action == "insert":
            tree = build_tree(structure, keys)
            value = check_tree_operation(structure, "insert", tree, {"value": key}, settings)["values"][0]
            keys.append(value)
        elif action == "delete":
            if isinstance(key, bool) or not isinstance(key, int):
                raise InvalidParameters("invalid-type", "'key' must be an integer", "key")
            value = key
            if value not in keys:
                raise InvalidParameters("unknown-key", f"Key {value} is not in the tree", "key")
            keys.remove(value)
        else:
            raise InvalidParameters("invalid-value", f"Unknown tree edit '{action}'", "action")

        return self._commit_domain(session, {"structure": structure, "keys": keys})

    # ============= Runs =============

    def start_run(
        self,
        session: Session,
        algorithm_id: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Run:
        """Build a Run from the session domain plus ``options`` and load it paused.

        ``options`` override domain parameters, so the request alone is
        enough to rebuild the same Run later.
        """
        params = {**session.domain, **(options or {})}
        return self._load_request(session, AlgorithmRequest.create(session.family, algorithm_id, params))

    def restart_run(self, session: Session) -> Run:
        """Fresh Run from the last request, e.g. after reset or cancel."""
        request = session.controller.last_request
        if request is None:
            raise InvalidStateError("Nothing has been run in this session yet", session.controller.status.value)
        return self._load_request(session, request)

    def open_link(self, link: Dict[str, Any]) -> Session:
        """Rebuild a session from a deep link ``{family, algorithm_id, params, index}``."""
        params = dict(link.get("params") or {})
        session = self.create_session(link.get("family"), params)
        try:
            run = self.start_run(session, link.get("algorithm_id"), params)
            index = link.get("index", -1)
            if isinstance(index, bool) or not isinstance(index, int):
                raise InvalidParameters("invalid-type", "'index' must be an integer", "index")
            if index >= 0 and len(run) > 0:
                self.seek(session, index)
        except Exception:
            self.delete_session(session.id)
            raise
        return session

    def _load_request(self, session: Session, request: AlgorithmRequest) -> Run:
        self._remember_loop()
        run = create_run(request, self.settings)

        previous = session.controller.run
        session.scheduler.stop()
        if previous is not None and session.controller.status in (PlaybackStatus.RUNNING, PlaybackStatus.PAUSED):
            self._dispatch(session, self._cancelled_notification(session, previous.run_id))
        self._dispatch(session, self._run_notification(session, run))
        session.controller.load(run)
        session.touch()
        self._sync_status(session)

        logger.info(
            "Session %s started %s/%s run %s (%d steps)",
            session.id,
            session.family.value,
            request.algorithm_id,
            run.run_id,
            len(run),
        )
        return run

    # ============= Playback intents =============

    def play(self, session: Session) -> None:
        self._remember_loop()
        session.controller.play()
        session.scheduler.start()
        self._after_intent(session)

    def pause(self, session: Session) -> None:
        session.controller.pause()
        session.scheduler.stop()
        self._after_intent(session)

    def step_forward(self, session: Session) -> Frame:
        return self._manual(session, session.controller.step_forward)

    def step_backward(self, session: Session) -> Frame:
        return self._manual(session, session.controller.step_backward)

    def seek(self, session: Session, index: int) -> Frame:
        return self._manual(session, lambda: session.controller.seek(index))

    def set_speed(self, session: Session, multiplier: float) -> float:
        speed = session.controller.set_speed(multiplier)
        self._after_intent(session, force_status=True)
        return speed

    def reset(self, session: Session) -> None:
        session.scheduler.stop()
        session.controller.reset()
        self._after_intent(session)

    def cancel(self, session: Session) -> None:
        run = session.controller.run
        was_active = session.controller.status not in (PlaybackStatus.IDLE, PlaybackStatus.CANCELLED)
        session.scheduler.stop()
        session.controller.cancel()
        if was_active:
            self._dispatch(session, self._cancelled_notification(session, run.run_id if run else None))
        self._after_intent(session)

    def _manual(self, session: Session, move: Callable[[], Frame]) -> Frame:
        session.scheduler.stop()
        try:
            frame = move()
        except ReducerContractError as exc:
            self._on_failure(session, exc)
            raise
        self._after_intent(session)
        return frame

    def _after_intent(self, session: Session, force_status: bool = False) -> None:
        session.touch()
        self._sync_status(session, force=force_status)

    # ============= Notifications =============

    def _on_frame(self, session: Session, frame: Frame) -> None:
        self._dispatch(session, self._frame_notification(session, frame))
        self._sync_status(session)

    def _on_failure(self, session: Session, exc: Exception) -> None:
        logger.error("Session %s playback failed: %s", session.id, exc)
        # The halted Run is released; its id survives on the last published frame
        frame = session.controller.current_frame
        self._dispatch(session, self._failed_notification(session, frame.run_id if frame else None, str(exc)))
        self._sync_status(session)

    def _sync_status(self, session: Session, force: bool = False) -> None:
        status = session.controller.status
        if status == session.last_status and not force:
            return
        session.last_status = status
        logger.debug("Session %s is now %s", session.id, status.value)
        self._dispatch(session, self._status_notification(session, session.controller.to_dict()))

    def _remember_loop(self) -> None:
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            pass

    def _dispatch(self, session: Session, coro) -> None:
        """Queue a WebSocket notification on the session's outbox.

        Outside any loop (plain synchronous use) the notification is dropped.
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            if self._loop is not None and self._loop.is_running():
                self._loop.call_soon_threadsafe(self._enqueue, session, coro)
            else:
                coro.close()
                logger.debug("No event loop for WebSocket notification; skipped")
            return
        self._enqueue(session, coro)

    def _enqueue(self, session: Session, coro) -> None:
        """Append to the outbox; start a courier unless one is draining it already."""
        session.outbox.append(coro)
        loop = asyncio.get_running_loop()
        courier = session.courier
        if courier is not None and not courier.done() and courier.get_loop() is loop:
            return
        courier = loop.create_task(self._deliver(session))
        session.courier = courier
        self._pending.add(courier)
        courier.add_done_callback(self._notification_done)

    async def _deliver(self, session: Session) -> None:
        """Send queued notifications one at a time, in the order they were raised."""
        while session.outbox:
            coro = session.outbox.popleft()
            try:
                await coro
            except Exception as e:
                logger.error("WebSocket notification for session %s failed: %s", session.id, e)

    def _notification_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("WebSocket notification failed: %s", task.exception())

    async def _frame_notification(self, session: Session, frame: Frame) -> None:
        from websocket import notify_playback_frame

        await notify_playback_frame(session.id, frame.to_dict())

    async def _status_notification(self, session: Session, playback: Dict[str, Any]) -> None:
        from websocket import notify_playback_status

        await notify_playback_status(session.id, playback)

    async def _cancelled_notification(self, session: Session, run_id: Optional[str]) -> None:
        from websocket import notify_playback_cancelled

        await notify_playback_cancelled(session.id, run_id)

    async def _failed_notification(self, session: Session, run_id: Optional[str], error: str) -> None:
        from websocket import notify_playback_failed

        await notify_playback_failed(session.id, run_id, error)

    async def _run_notification(self, session: Session, run: Run) -> None:
        from websocket import notify_run_created

        await notify_run_created(session.id, run.to_dict())


# Global session manager instance
session_manager = SessionManager()
