import threading
import time

from .time_source import TimeSyncFailed


class ClockScheduler:
    """Background tasks around a :class:`ClockService`.

    - tick driver: calls ``service.tick()`` at ``TICK_INTERVAL_SEC``
    - time corrector: one correction cycle every ``TIME_SYNC_INTERVAL_SEC``
    - broadcast pump: flushes subscriber queues

    Tasks are started with ``socketio.start_background_task`` so they follow
    the Socket.IO async mode, and all of them stop on ``stop()``.
    """

    def __init__(self, app, service, socketio):
        self.app = app
        self.service = service
        self.socketio = socketio
        self._stop = threading.Event()
        self._start_lock = threading.Lock()
        self._tasks = []

    @property
    def running(self) -> bool:
        return bool(self._tasks) and not self._stop.is_set()

    def start(self) -> None:
        with self._start_lock:
            if not self._tasks:
                self._start_tasks()

    def _start_tasks(self) -> None:
        cfg = self.app.config
        self._stop.clear()
        self._tasks.append(self.socketio.start_background_task(self._tick_worker))
        if not self.service.inline_delivery:
            self._tasks.append(self.socketio.start_background_task(self._pump_worker))
        if cfg.get('TIME_SYNC_ENABLED') and self.service.corrector is not None:
            self._tasks.append(self.socketio.start_background_task(self._sync_worker))
        self.app.logger.info(f"[scheduler-start] tasks={len(self._tasks)} tick={cfg.get('TICK_INTERVAL_SEC', 1.0)}s")

    def stop(self) -> None:
        self._stop.set()
        for task in self._tasks:
            join = getattr(task, 'join', None)
            if join is not None:
                join(timeout=5)
        self._tasks = []
        self.service.shutdown()
        self.app.logger.info("[scheduler-stop]")

    def _sleep_until(self, deadline: float) -> None:
        # Short naps so stop() is honored promptly
        while not self._stop.is_set():
            left = deadline - time.monotonic()
            if left <= 0:
                return
            self.socketio.sleep(min(left, 0.25))

    def _tick_worker(self) -> None:
        interval = float(self.app.config.get('TICK_INTERVAL_SEC', 1.0))
        try:
            hb = int(self.app.config.get('TIMER_HEARTBEAT_SEC', 0))
        except (TypeError, ValueError):
            hb = 0
        next_tick = time.monotonic() + interval
        next_heartbeat = time.monotonic() + hb if hb > 0 else None
        while not self._stop.is_set():
            self._sleep_until(next_tick)
            if self._stop.is_set():
                break
            try:
                self.service.tick()
            except Exception:
                # A failed tick leaves the committed state untouched; keep the clock alive
                self.app.logger.exception("[tick-error] tick failed; state unchanged")
            next_tick += interval
            now = time.monotonic()
            if next_tick < now:
                # Overslept: the next tick catches up from the anchors
                next_tick = now + interval
            if next_heartbeat is not None and now >= next_heartbeat:
                state = self.service.state
                self.app.logger.info(
                    f"[tick-heartbeat] phase={state.phase.value} round={state.current_round}/{state.total_rounds} "
                    f"remaining={state.display_seconds}s subscribers={self.service.broadcaster.subscriber_count}"
                )
                next_heartbeat = now + hb

    def _sync_worker(self) -> None:
        corrector = self.service.corrector
        while not self._stop.is_set():
            try:
                corrector.sync()
            except TimeSyncFailed:
                pass  # logged and counted by the corrector; health reports it
            except Exception:
                self.app.logger.exception("[time-sync-error] correction cycle failed; keeping offset")
            self._sleep_until(time.monotonic() + corrector.interval_sec)

    def _pump_worker(self) -> None:
        interval = float(self.app.config.get('BROADCAST_PUMP_INTERVAL_SEC', 0.02))
        while not self._stop.is_set():
            self._flush()
            self.socketio.sleep(interval)
        self._flush()

    def _flush(self) -> None:
        try:
            self.service.broadcaster.flush()
        except Exception:
            self.app.logger.exception("[pump-error] broadcast flush failed")
