# =============================================================================
# core/thread_manager.py
#
# ThreadManager — start/stop ordering for the rehab application's
# long-running parts (announcer worker, HUD bridge, scheduler loop).
#
#   start_all()  registration order; if one part fails, the parts already
#                running are stopped again before the error propagates
#   stop_all()   reverse order, only parts that actually started; returns
#                the names whose stop() raised so the caller can turn an
#                unclean shutdown into a non-zero exit code
# =============================================================================

import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from core.logger import get_logger

log = get_logger(__name__)


@dataclass
class Component:
    name:     str
    start_fn: Optional[Callable[[], None]] = None
    stop_fn:  Optional[Callable[[], None]] = None
    running:  bool = False


class ThreadManager:
    """
    Usage:
        tm = ThreadManager()
        tm.register("Announcer", announcer.start, announcer.stop)
        tm.register("RehabCore", core.start, core.stop)
        tm.start_all()
        ...
        failed = tm.stop_all()      # [] on a clean shutdown
    """

    def __init__(self):
        self._components: List[Component] = []

    def register(
        self,
        name:     str,
        start_fn: Optional[Callable[[], None]] = None,
        stop_fn:  Optional[Callable[[], None]] = None,
    ) -> None:
        self._components.append(Component(name, start_fn, stop_fn))
        log.debug(f"Registered component: {name}")

    @property
    def running(self) -> List[str]:
        return [c.name for c in self._components if c.running]

    def start_all(self) -> None:
        """Start every component; on failure roll back and re-raise."""
        log.info("Starting rehab components …")
        t_all = time.perf_counter()

        for comp in self._components:
            t0 = time.perf_counter()
            try:
                if comp.start_fn is not None:
                    comp.start_fn()
            except Exception as e:
                log.error(f"  ✗  {comp.name} failed to start: {e}", exc_info=True)
                self.stop_all()
                raise
            comp.running = True
            log.info(f"  ✓  {comp.name:<18} {(time.perf_counter() - t0) * 1000:.0f}ms")

        log.info(f"All components up in {(time.perf_counter() - t_all) * 1000:.0f}ms")

    def stop_all(self) -> List[str]:
        """
        Stop running components last-started-first. Stop errors are logged,
        never raised.

        Returns:
            Names of the components whose stop function raised.
        """
        failed: List[str] = []
        for comp in reversed(self._components):
            if not comp.running:
                continue
            comp.running = False
            if comp.stop_fn is None:
                continue
            try:
                comp.stop_fn()
                log.info(f"  ✓  {comp.name} stopped.")
            except Exception as e:
                failed.append(comp.name)
                log.error(f"  ✗  {comp.name} shutdown error: {e}", exc_info=True)

        if failed:
            log.warning(f"Unclean shutdown: {', '.join(failed)}")
        else:
            log.info("All components stopped.")
        return failed
