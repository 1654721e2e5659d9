"""Client-side progress session: decides when playback activity is saved.

The controller is driven by playback events forwarded from the host player
(``on_play``, ``on_pause``, ``on_seeking`` ...) and by timers obtained from an
injectable scheduler, ``loop.call_later`` by default. Network calls run as
tasks so event handlers never block.

States::

    IDLE --activate--> LOADING --fetch resolved + metadata--> READY
    READY --seeking--> SEEKING --seeked--> READY

Saves only happen in READY. Event triggers (pause, seek-start, end) flush on
the leading edge and arm a debounce window; further triggers inside the
window coalesce into a single trailing flush.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from ..domain.intervals import WatchInterval, merge_intervals
from ..errors import ConflictError
from .api import ProgressPayload, ProgressSnapshot

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    SEEKING = "seeking"


@dataclass(frozen=True)
class SessionTimings:
    save_interval_seconds: float = 5.0
    debounce_seconds: float = 1.5
    # saved positions at or below this are treated as "start from the beginning"
    resume_epsilon_seconds: float = 0.1


class PlaybackSurface(Protocol):
    @property
    def current_time(self) -> float:
        ...

    @property
    def duration(self) -> float:
        ...

    @property
    def paused(self) -> bool:
        ...

    def played_ranges(self) -> Iterable[tuple[float, float]]:
        ...

    def seek(self, position: float) -> None:
        ...


class ProgressGateway(Protocol):
    async def fetch_progress(self, video_id: str) -> ProgressSnapshot:
        ...

    async def save_progress(self, video_id: str, payload: ProgressPayload) -> ProgressSnapshot:
        ...


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        ...


@dataclass
class SessionView:
    """Display state for the UI layer."""

    video_id: str | None = None
    watched_intervals: list[WatchInterval] = field(default_factory=list)
    total_unique_watched_seconds: float = 0.0
    progress_percentage: float = 0.0
    current_time: float = 0.0
    duration: float = 0.0
    is_playing: bool = False
    last_error: str | None = None
    conflicts: int = 0


class ProgressSessionController:
    def __init__(
        self,
        player: PlaybackSurface,
        gateway: ProgressGateway,
        *,
        timings: SessionTimings | None = None,
        scheduler: Scheduler | None = None,
        on_change: Callable[[SessionView], None] | None = None,
    ) -> None:
        self._player = player
        self._gateway = gateway
        self._timings = timings or SessionTimings()
        self._scheduler = scheduler
        self._on_change = on_change

        self.state = SessionState.IDLE
        self.view = SessionView()
        self._generation = 0
        self._tasks: set[asyncio.Task[None]] = set()
        self._periodic: TimerHandle | None = None
        self._debounce: TimerHandle | None = None
        self._reset_video_state()

    def _reset_video_state(self) -> None:
        self._acknowledged_duration = 0.0
        self._resume_position = 0.0
        self._fetch_done = False
        self._metadata_ready = False
        self._trailing_pending = False
        self._flush_deferred = False

    # ---- lifecycle ----

    def activate(self, video_id: str) -> None:
        """Make ``video_id`` the active video, dropping unsaved local state."""
        if video_id == self.view.video_id and self.state is not SessionState.IDLE:
            return

        self._cancel_timers()
        self._generation += 1
        self._reset_video_state()
        self.view = SessionView(video_id=video_id)
        self._transition(SessionState.LOADING)
        self._spawn(self._fetch(self._generation, video_id))

    def close(self) -> None:
        """Tear down: cancel timers and discard results of in-flight requests."""
        self._cancel_timers()
        self._generation += 1
        self._transition(SessionState.IDLE)

    async def drain(self) -> None:
        """Wait until every in-flight fetch and save has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ---- playback events ----

    def on_metadata_loaded(self) -> None:
        if self.state is SessionState.IDLE:
            return
        self.view.duration = self._player.duration
        self._metadata_ready = True
        self._maybe_enter_ready()

    def on_play(self) -> None:
        if self.state is SessionState.SEEKING:
            self.view.is_playing = True
            return
        if self.state is not SessionState.READY:
            return
        self.view.is_playing = True
        self._start_periodic()
        self._notify()

    def on_pause(self) -> None:
        if self.state is not SessionState.READY:
            return
        self.view.is_playing = False
        self._stop_periodic()
        self._event_trigger("pause")
        self._notify()

    def on_time_update(self) -> None:
        if self.state is not SessionState.READY:
            return
        self.view.current_time = self._player.current_time

    def on_seeking(self) -> None:
        if self.state is not SessionState.READY:
            return
        self._stop_periodic()
        # capture what was played before the position jumps
        self._event_trigger("seek")
        self._transition(SessionState.SEEKING)

    def on_seeked(self) -> None:
        if self.state is not SessionState.SEEKING:
            return
        self._transition(SessionState.READY)
        self.view.current_time = self._player.current_time
        self.view.is_playing = not self._player.paused
        if self.view.is_playing:
            self._start_periodic()
        if self._flush_deferred:
            self._flush_deferred = False
            self._trailing_pending = True
            self._arm_debounce()
        self._notify()

    def on_ended(self) -> None:
        if self.state is not SessionState.READY:
            return
        self.view.is_playing = False
        self._stop_periodic()
        self._event_trigger("ended")
        self.view.current_time = self._player.duration or self.view.duration
        self._notify()

    # ---- state transitions ----

    def _transition(self, new_state: SessionState) -> None:
        if new_state is self.state:
            return
        logger.debug(
            "session_transition video_id=%s from=%s to=%s",
            self.view.video_id,
            self.state.value,
            new_state.value,
        )
        self.state = new_state

    def _maybe_enter_ready(self) -> None:
        if self.state is not SessionState.LOADING:
            return
        if not (self._fetch_done and self._metadata_ready):
            return
        self._transition(SessionState.READY)
        self._resume()

    def _resume(self) -> None:
        duration = self._player.duration
        self.view.duration = duration
        position = self._resume_position
        if self._timings.resume_epsilon_seconds < position < duration:
            self._player.seek(position)
        # seek granularity may land elsewhere; the player's answer is the baseline
        self.view.current_time = self._player.current_time

        if duration > 0 and duration != self._acknowledged_duration:
            self._spawn(
                self._save(
                    self._generation,
                    self.view.video_id,
                    ProgressPayload(
                        last_watched_position=self.view.current_time,
                        video_duration=duration,
                    ),
                    "duration-sync",
                )
            )

        if not self._player.paused:
            self.view.is_playing = True
            self._start_periodic()
        self._notify()

    # ---- timers ----

    def _get_scheduler(self) -> Scheduler:
        if self._scheduler is None:
            self._scheduler = asyncio.get_running_loop()
        return self._scheduler

    def _start_periodic(self) -> None:
        self._stop_periodic()
        self._periodic = self._get_scheduler().call_later(
            self._timings.save_interval_seconds, self._on_periodic_tick
        )

    def _stop_periodic(self) -> None:
        if self._periodic is not None:
            self._periodic.cancel()
            self._periodic = None

    def _on_periodic_tick(self) -> None:
        self._periodic = None
        if self.state is not SessionState.READY or self._player.paused:
            return
        self._flush("periodic")
        self._start_periodic()

    def _arm_debounce(self) -> None:
        if self._debounce is not None:
            self._debounce.cancel()
        self._debounce = self._get_scheduler().call_later(
            self._timings.debounce_seconds, self._on_debounce_elapsed
        )

    def _event_trigger(self, reason: str) -> None:
        if self._debounce is None:
            self._trailing_pending = False
            self._flush(reason)
        else:
            self._trailing_pending = True
        self._arm_debounce()

    def _on_debounce_elapsed(self) -> None:
        self._debounce = None
        if not self._trailing_pending:
            return
        self._trailing_pending = False
        if self.state is SessionState.SEEKING:
            self._flush_deferred = True
            return
        self._flush("debounce")

    def _cancel_timers(self) -> None:
        self._stop_periodic()
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None
        self._trailing_pending = False
        self._flush_deferred = False

    # ---- saving ----

    def _build_payload(self) -> ProgressPayload:
        played = merge_intervals(
            {"start": start, "end": end} for start, end in self._player.played_ranges()
        )
        duration = self._player.duration
        include_duration = duration > 0 and duration != self._acknowledged_duration
        return ProgressPayload(
            intervals=played,
            last_watched_position=self._player.current_time,
            video_duration=duration if include_duration else None,
        )

    def _flush(self, reason: str) -> bool:
        if self.state is not SessionState.READY or self.view.video_id is None:
            logger.debug(
                "flush_suppressed video_id=%s reason=%s state=%s",
                self.view.video_id,
                reason,
                self.state.value,
            )
            return False
        payload = self._build_payload()
        self._spawn(self._save(self._generation, self.view.video_id, payload, reason))
        return True

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _fetch(self, generation: int, video_id: str) -> None:
        try:
            snapshot: ProgressSnapshot | None = await self._gateway.fetch_progress(video_id)
        except Exception as exc:  # noqa: BLE001
            if not self._is_current(generation):
                return
            # no saved progress is a usable default; playback must not block on it
            logger.warning("progress_fetch_failed video_id=%s error=%s", video_id, exc)
            self.view.last_error = str(exc)
            snapshot = None

        if not self._is_current(generation):
            logger.debug("progress_fetch_discarded video_id=%s", video_id)
            return

        if snapshot is not None:
            self._apply_snapshot(snapshot)
            self._resume_position = snapshot.last_watched_position
        self._fetch_done = True
        self._maybe_enter_ready()
        self._notify()

    async def _save(
        self, generation: int, video_id: str | None, payload: ProgressPayload, reason: str
    ) -> None:
        if video_id is None:
            return
        try:
            snapshot = await self._gateway.save_progress(video_id, payload)
        except ConflictError as exc:
            if not self._is_current(generation):
                return
            # played ranges stay with the player, so the next trigger re-sends them
            self.view.conflicts += 1
            self.view.last_error = exc.message
            logger.warning(
                "progress_save_conflict video_id=%s reason=%s conflicts=%d",
                video_id,
                reason,
                self.view.conflicts,
            )
            self._notify()
            return
        except Exception as exc:  # noqa: BLE001
            if not self._is_current(generation):
                return
            self.view.last_error = str(exc)
            logger.error(
                "progress_save_failed video_id=%s reason=%s", video_id, reason, exc_info=exc
            )
            self._notify()
            return

        if not self._is_current(generation):
            logger.debug("progress_save_discarded video_id=%s reason=%s", video_id, reason)
            return

        self._apply_snapshot(snapshot)
        self.view.last_error = None
        logger.debug(
            "progress_saved video_id=%s reason=%s percentage=%s",
            video_id,
            reason,
            snapshot.progress_percentage,
        )
        self._notify()

    def _apply_snapshot(self, snapshot: ProgressSnapshot) -> None:
        self.view.watched_intervals = list(snapshot.watched_intervals)
        self.view.total_unique_watched_seconds = snapshot.total_unique_watched_seconds
        self.view.progress_percentage = snapshot.progress_percentage
        if snapshot.video_duration > 0:
            self._acknowledged_duration = snapshot.video_duration

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self.view)
        except Exception:  # noqa: BLE001
            # a broken listener must not stop saving
            logger.exception("session_listener_failed video_id=%s", self.view.video_id)
