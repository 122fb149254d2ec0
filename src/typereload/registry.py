"""
Per-module dispatch registry for unload and load units.

Each woven module gets one DispatchRegistry with two channels. A channel is an
immutable tuple of zero-argument callables held in an AtomicReference:

- register: read the current tuple, build a new one with the action appended,
  swap it in only if nothing else did meanwhile; otherwise retry
- invoke: take the tuple as it is right now and call each action in order

Readers never block and never see a half-built tuple, and concurrent
registrations (several generic instantiations created at once) are never lost.

Usage:
    registry = registry_for('app.settings')
    registry.register(UNLOAD, Settings.flush)
    registry.invoke(UNLOAD)
"""

import logging
import threading
from typing import Callable, Dict, Generic, List, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')

Action = Callable[[], None]

UNLOAD = 'unload'
LOAD = 'load'
CHANNELS = (UNLOAD, LOAD)


class AtomicReference(Generic[T]):
    """A reference updated by compare-and-set.

    The lock only guards the identity check and the swap; nothing else ever
    runs while it is held.
    """

    def __init__(self, value: T):
        self._value = value
        self._lock = threading.Lock()

    def get(self) -> T:
        return self._value

    def compare_and_set(self, expected: T, new: T) -> bool:
        """Store new if the current value is expected (by identity). Returns whether it did."""
        with self._lock:
            if self._value is not expected:
                return False
            self._value = new
            return True


def combine(composite: Tuple[Action, ...], action: Action) -> Tuple[Action, ...]:
    """New composite calling everything in composite, then action."""
    return composite + (action,)


class DispatchRegistry:
    """Composite unload/load actions of one module."""

    def __init__(self, module_name: str):
        self.module_name = module_name
        self._channels: Dict[str, AtomicReference] = {channel: AtomicReference(()) for channel in CHANNELS}

    def _channel(self, channel: str) -> AtomicReference:
        try:
            return self._channels[channel]
        except KeyError:
            raise ValueError(f"Unknown channel {channel!r}; expected one of {', '.join(CHANNELS)}") from None

    def register(self, channel: str, action: Action) -> None:
        """Append action to channel. Safe to call from any number of threads."""
        reference = self._channel(channel)
        while True:
            current = reference.get()
            if reference.compare_and_set(current, combine(current, action)):
                return

    def invoke(self, channel: str) -> None:
        """Call every action registered on channel, in registration order.

        Exceptions propagate; actions after the failing one do not run.
        """
        for action in self._channel(channel).get():
            action()

    def actions(self, channel: str) -> Tuple[Action, ...]:
        """Snapshot of the actions currently registered on channel."""
        return self._channel(channel).get()

    def register_unload(self, action: Action) -> None:
        self.register(UNLOAD, action)

    def register_load(self, action: Action) -> None:
        self.register(LOAD, action)

    def invoke_unload(self) -> None:
        self.invoke(UNLOAD)

    def invoke_load(self) -> None:
        self.invoke(LOAD)

    def __repr__(self) -> str:
        counts = ', '.join(f"{channel}={len(self.actions(channel))}" for channel in CHANNELS)
        return f"DispatchRegistry({self.module_name!r}, {counts})"


# =============================================================================
# MODULE REGISTRIES
# =============================================================================

_registries: Dict[str, DispatchRegistry] = {}
_registries_lock = threading.Lock()


def registry_for(module_name: str) -> DispatchRegistry:
    """Get the registry of module_name, creating it on first use."""
    registry = _registries.get(module_name)
    if registry is None:
        with _registries_lock:
            registry = _registries.get(module_name)
            if registry is None:
                registry = DispatchRegistry(module_name)
                _registries[module_name] = registry
                logger.debug(f"Created dispatch registry for {module_name}")
    return registry


def all_registries() -> List[DispatchRegistry]:
    """Every module registry, in the order the modules first registered."""
    with _registries_lock:
        return list(_registries.values())


def clear_registries() -> None:
    """Forget every registry (for testing)."""
    with _registries_lock:
        _registries.clear()
