"""
Reload orchestrator: runs one unload -> collect -> load cycle over every module.

Cycle:
1. UNLOADING: invoke every registry's unload channel (each module's classes
   in registration order)
2. BARRIER_WAIT: full garbage collection, which also runs pending finalizers,
   so nothing released during unload is still being torn down
3. LOADING: invoke every registry's load channel
4. back to IDLE

Any exception ends the cycle early: it is reported to the diagnostic sink and
the orchestrator returns to IDLE, ready for the next cycle. There is no
rollback; classes already reset stay reset.

Usage:
    from typereload import reload_dirty_types

    if not reload_dirty_types():
        ...  # failure was reported to the diagnostic sink
"""

import gc
import logging
import threading
from enum import Enum
from typing import Callable, List, Optional

from typereload.config import get_reload_config
from typereload.registry import DispatchRegistry, all_registries

logger = logging.getLogger(__name__)

DiagnosticSink = Callable[[BaseException, str], None]


class ReloadState(Enum):
    IDLE = 'idle'
    UNLOADING = 'unloading'
    BARRIER_WAIT = 'barrier_wait'
    LOADING = 'loading'


def log_diagnostic(error: BaseException, message: str) -> None:
    """Default diagnostic sink: log the failure with its traceback."""
    logger.error(message, exc_info=error)


class ReloadOrchestrator:
    """Drives reload cycles. One cycle runs at a time; concurrent callers wait their turn."""

    def __init__(self, registries: Optional[Callable[[], List[DispatchRegistry]]] = None,
                 diagnostic_sink: Optional[DiagnosticSink] = None):
        self._registries = registries or all_registries
        self.diagnostic_sink: DiagnosticSink = diagnostic_sink or log_diagnostic
        self.state = ReloadState.IDLE
        self._cycle_lock = threading.Lock()

    def _enter(self, state: ReloadState) -> None:
        logger.debug(f"Reload state {self.state.value} -> {state.value}")
        self.state = state

    def _collection_barrier(self) -> None:
        if get_reload_config().collect_garbage:
            collected = gc.collect()
            logger.debug(f"Collection barrier released {collected} object(s)")

    def _report(self, error: Exception) -> None:
        message = f"Reload failed while {self.state.value}: {type(error).__name__}: {error}"
        try:
            self.diagnostic_sink(error, message)
        except Exception:
            logger.exception(f"Diagnostic sink failed while reporting: {message}")

    def run_cycle(self) -> bool:
        """Run one reload cycle. Returns True on success, False if it was cut short."""
        with self._cycle_lock:
            registries = self._registries()
            try:
                self._enter(ReloadState.UNLOADING)
                for registry in registries:
                    registry.invoke_unload()

                self._enter(ReloadState.BARRIER_WAIT)
                self._collection_barrier()

                self._enter(ReloadState.LOADING)
                for registry in registries:
                    registry.invoke_load()
            except Exception as error:
                self._report(error)
                return False
            finally:
                self._enter(ReloadState.IDLE)

            logger.info(f"Reloaded static state of {len(registries)} module(s)")
            return True


# =============================================================================
# PROCESS-WIDE ORCHESTRATOR
# =============================================================================

_orchestrator = ReloadOrchestrator()


def get_orchestrator() -> ReloadOrchestrator:
    return _orchestrator


def set_diagnostic_sink(sink: Optional[DiagnosticSink]) -> None:
    """Route reload failures to sink (None restores logging)."""
    _orchestrator.diagnostic_sink = sink or log_diagnostic


def reload_dirty_types() -> bool:
    """Reset the static state of every woven class, after running its unload callbacks.

    Call after the host swapped in new code. Never raises; returns False when
    the cycle failed and the failure went to the diagnostic sink.
    """
    return _orchestrator.run_cycle()
