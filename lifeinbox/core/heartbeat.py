"""
Heartbeat - cooperative scheduler for periodic maintenance.
Sweeps idle pagination sessions and backfills missing embeddings without blocking queries.
"""

import threading
import time
from typing import Callable, Dict, Optional

from . import config
from ..util.logging import logger


class Heartbeat:
    """
    Runs registered tasks on their intervals.

    A failing task is logged and the loop carries on; one bad task never stops
    the others. Timing uses a monotonic clock, injectable for tests.
    """

    def __init__(self, tick_sec: float = 0.1, clock: Callable[[], float] = time.monotonic,
                 enabled: bool = None):
        self.tick_sec = tick_sec
        self.clock = clock
        self.enabled = config.is_heartbeat_enabled() if enabled is None else enabled
        self.tasks: Dict[str, Dict] = {}  # task_name -> {func, interval, last_run, runs, failures}
        self.running = False
        self._shutdown = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._started_at: Optional[float] = None

    def register_task(self, name: str, interval_sec: float, func: Callable):
        """
        Register a task to be executed periodically.

        Args:
            name: Unique task identifier
            interval_sec: How often to run this task in seconds
            func: Function to call (should be fast and not block)
        """
        if not callable(func):
            raise ValueError(f"Task function must be callable: {func}")

        if interval_sec < 1:
            raise ValueError(f"Interval must be >= 1 second: {interval_sec}")

        self.tasks[name] = {
            "func": func,
            "interval": interval_sec,
            "last_run": None,
            "runs": 0,
            "failures": 0,
        }
        logger.info(f"Registered heartbeat task '{name}' (every {interval_sec}s)")

    def unregister_task(self, name: str):
        if self.tasks.pop(name, None) is not None:
            logger.info(f"Unregistered heartbeat task '{name}'")

    def list_tasks(self):
        return list(self.tasks.keys())

    def should_run_task(self, name: str) -> bool:
        """Check if a task is due this cycle."""
        task_info = self.tasks[name]
        if task_info["last_run"] is None:
            return True  # Run immediately if never run

        elapsed = self.clock() - task_info["last_run"]
        return elapsed >= task_info["interval"]

    def run_task(self, name: str) -> bool:
        """Execute a task and record timing. Returns False when the task raised."""
        task_info = self.tasks[name]
        start_time = self.clock()

        try:
            result = task_info["func"]()
        except Exception as e:
            end_time = self.clock()
            task_info["last_run"] = end_time
            task_info["failures"] += 1
            logger.log_heartbeat_task(name, start_time, end_time, "failed", {"error": str(e)})
            return False

        end_time = self.clock()
        task_info["last_run"] = end_time
        task_info["runs"] += 1
        logger.log_heartbeat_task(name, start_time, end_time, "success",
                                  result if isinstance(result, dict) else None)
        return True

    def run_pending(self) -> int:
        """Run every due task once. Returns how many ran."""
        ran = 0
        for name in list(self.tasks.keys()):
            if name in self.tasks and self.should_run_task(name):
                self.run_task(name)
                ran += 1
        return ran

    def reset_task(self, name: str):
        """Reset a task's last_run time to force immediate execution."""
        if name in self.tasks:
            self.tasks[name]["last_run"] = None

    def _loop(self):
        try:
            while self.running and not self._shutdown.is_set():
                self.run_pending()
                self._shutdown.wait(self.tick_sec)
        finally:
            self.running = False
            logger.info("Heartbeat loop stopped")

    def start(self, background: bool = True):
        """
        Start the heartbeat loop.

        With ``background`` the loop runs in a daemon thread and this returns
        immediately; otherwise it blocks until ``stop`` or Ctrl+C.
        """
        if not self.enabled:
            logger.info("Heartbeat disabled (HEARTBEAT_ENABLED=false). Skipping start.")
            return

        if self.running:
            raise RuntimeError("Heartbeat already running")

        self.running = True
        self._shutdown.clear()
        self._started_at = self.clock()
        logger.info(f"Starting heartbeat loop with tasks: {self.list_tasks()}")

        if background:
            self._thread = threading.Thread(target=self._loop, name="heartbeat", daemon=True)
            self._thread.start()
            return

        try:
            self._loop()
        except KeyboardInterrupt:
            logger.info("Heartbeat interrupted by user")

    def stop(self, timeout: float = 2.0):
        """Stop the heartbeat loop gracefully."""
        if not self.running:
            return

        self.running = False
        self._shutdown.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def get_status(self):
        """Return current heartbeat status for monitoring."""
        if not self.enabled:
            return {"status": "disabled", "reason": "HEARTBEAT_ENABLED=false"}

        return {
            "status": "running" if self.running else "stopped",
            "tasks": {
                name: {
                    "interval_sec": info["interval"],
                    "last_run": info["last_run"],
                    "next_run": info["last_run"] + info["interval"] if info["last_run"] is not None else None,
                    "runs": info["runs"],
                    "failures": info["failures"],
                }
                for name, info in self.tasks.items()
            },
            "uptime_sec": self.clock() - self._started_at if self.running and self._started_at else 0.0,
        }


def register_maintenance_tasks(heartbeat: Heartbeat, sessions, embedding_index,
                               sweep_interval_sec: float = None, reindex_interval_sec: float = None):
    """Wire the retrieval core's periodic work into a heartbeat.

    Sessions live in the serving process, so pass ``sessions=None`` from any
    other process to schedule the reindex alone.
    """
    if sessions is not None:
        heartbeat.register_task(
            "session_sweep",
            sweep_interval_sec or config.SESSION_SWEEP_INTERVAL_SEC,
            lambda: {"removed": sessions.sweep()},
        )

    if embedding_index is not None:
        heartbeat.register_task(
            "embedding_reindex",
            reindex_interval_sec or config.REINDEX_INTERVAL_SEC,
            lambda: embedding_index.reindex_batch().to_dict(),
        )
