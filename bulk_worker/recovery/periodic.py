import threading
from collections.abc import Callable
from dataclasses import dataclass, field

from bulk_worker.logging.logger import Log


@dataclass
class PeriodicTask:
    """A callable run with a fixed delay between the end of one run and the next."""

    name: str
    action: Callable[[], object]
    interval_seconds: float
    runs: int = 0
    _stop: threading.Event = field(default_factory=threading.Event, repr=False)
    _thread: threading.Thread | None = field(default=None, repr=False)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def cancel(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.action()
            except Exception:
                Log.exception(f"Periodic task {self.name} failed")
            self.runs += 1


class PeriodicScheduler:
    """Owns named periodic tasks and their start/stop lifecycle."""

    def __init__(self) -> None:
        self._tasks: dict[str, PeriodicTask] = {}
        self._started = False

    def add(self, name: str, action: Callable[[], object], interval_seconds: float) -> PeriodicTask:
        if name in self._tasks:
            raise ValueError(f"Periodic task {name!r} already registered")
        task = PeriodicTask(name=name, action=action, interval_seconds=interval_seconds)
        self._tasks[name] = task
        if self._started:
            task.start()
        return task

    def start(self) -> None:
        self._started = True
        for task in self._tasks.values():
            task.start()
        Log.info(f"Periodic scheduler started: {', '.join(self._tasks) or 'no tasks'}")

    def cancel(self, name: str, timeout: float | None = None) -> None:
        """Stop one task; the others keep running."""
        self._tasks.pop(name).cancel(timeout)

    def stop(self, timeout: float | None = None) -> None:
        self._started = False
        for task in self._tasks.values():
            task.cancel(timeout)
        Log.info("Periodic scheduler stopped")

    def task(self, name: str) -> PeriodicTask:
        return self._tasks[name]

    @property
    def task_names(self) -> list[str]:
        return list(self._tasks)
