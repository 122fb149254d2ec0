"""
Runtime support for woven modules.

Woven code imports this module as `__typereload__` and uses:
- generated: marks synthesized units
- store_static: binds a class attribute the way class creation does
- TypeInitializer: registers a class's units with its module's registry the
  moment the class object is created
"""

import logging
from typing import Any, Callable, Optional

from typereload.markers import never_reload, on_type_unload, static_event, static_property
from typereload.registry import registry_for
from typereload.reified import install_reified_getitem

logger = logging.getLogger(__name__)

__all__ = [
    'TypeInitializer',
    'generated',
    'never_reload',
    'on_type_unload',
    'static_event',
    'static_property',
    'store_static',
]


def generated(function: Callable) -> Callable:
    """Mark a function as synthesized by the weaver."""
    function.__typereload_generated__ = True
    return function


def store_static(owner: type, name: str, value: Any) -> Any:
    """Set owner.name = value, then call value.__set_name__ like class creation would.

    Returns value, so a rewritten `(name := value)` keeps its value.
    """
    setattr(owner, name, value)
    set_name = getattr(type(value), '__set_name__', None)
    if set_name is not None:
        set_name(value, owner, name)
    return value


class TypeInitializer:
    """Registration hook placed at the end of a woven class body.

    Python calls __set_name__ when the class object is created; that is when
    the class's units join its module's registry. A class decorator that
    rebuilds the class from its namespace (dataclass(slots=True), attrs with
    slots) calls it again for the new class object: the units stay registered
    once and run against whichever class was created last. For a generic class
    the origin registers like any other class, and every concrete
    instantiation registers its own units when it is first created.
    """

    def __init__(self, module_name: str, *, unload: Optional[Any] = None,
                 load: Optional[Any] = None, generic: bool = False):
        self.module_name = module_name
        self.unload = unload
        self.load = load
        self.generic = generic
        self.owner: Optional[type] = None

    def __set_name__(self, owner: type, name: str) -> None:
        rebuilt = self.owner is not None
        self.owner = owner
        if rebuilt:
            logger.debug(f"{self.module_name}.{owner.__qualname__} was rebuilt; keeping its registration")
        else:
            self.register()
        if self.generic:
            install_reified_getitem(owner, self.initialize_instantiation)

    def _bind(self, unit: Any, target: type) -> Callable[[], None]:
        # staticmethod -> plain function; classmethod -> method bound to target
        return unit.__get__(None, target)

    def _action(self, unit: Any, target: Optional[type]) -> Callable[[], None]:
        if target is not None:
            return self._bind(unit, target)

        def run_on_owner() -> None:
            self._bind(unit, self.owner)()

        return run_on_owner

    def register(self, target: Optional[type] = None) -> None:
        """Add the units to the registry of their module.

        Without a target the units run against the current owner class.
        """
        registry = registry_for(self.module_name)
        if self.unload is not None:
            registry.register_unload(self._action(self.unload, target))
        if self.load is not None:
            registry.register_load(self._action(self.load, target))
        registered = target if target is not None else self.owner
        logger.debug(f"Registered {self.module_name}.{registered.__qualname__} for reloads")

    def initialize_instantiation(self, instantiation: type) -> None:
        """Give a fresh instantiation its own class state, then register it."""
        if self.load is not None:
            self._bind(self.load, instantiation)()
        self.register(instantiation)

    def __repr__(self) -> str:
        owner = self.owner.__qualname__ if self.owner is not None else None
        return f"TypeInitializer({self.module_name!r}, owner={owner}, generic={self.generic})"
