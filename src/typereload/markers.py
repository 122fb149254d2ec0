"""
Declaration surface for reloadable classes.

These objects are what user code imports and applies. The weaver never
evaluates them: it recognizes them by name in the syntax tree. At run time
they only tag the decorated objects, and static_property/static_event provide
class-level storage with a separately reset backing slot.

Usage:
    from typereload import never_reload, on_type_unload, static_property, static_event

    class Cache:
        entries = {}
        hits: int = 0
        version: Annotated[int, never_reload] = 1
        theme = static_property("dark")
        changed = static_event()

        @on_type_unload(order=10)
        @classmethod
        def flush(cls):
            cls.entries.clear()

    @never_reload
    class Constants:
        PI = 3.14159
"""

from typing import Any, Callable, List, Optional

from typereload.model import backing_field_name


class _NeverReloadMarker:
    """Opt-out marker.

    Applied as a class decorator it excludes the whole class; placed in
    Annotated metadata it excludes one field, static_property or static_event.
    """

    def __call__(self, cls: type) -> type:
        cls.__never_reload__ = True
        return cls

    def __repr__(self) -> str:
        return 'never_reload'


never_reload = _NeverReloadMarker()


def on_type_unload(func: Optional[Callable] = None, *, order: int = 0):
    """Mark a zero-argument static or class method to run before the class is reset.

    Lower order runs earlier. Usable bare (@on_type_unload) or with arguments
    (@on_type_unload(order=100)), above or below @staticmethod/@classmethod.
    """
    def decorator(target):
        function = getattr(target, '__func__', target)
        function.__type_unload_order__ = order
        return target

    if func is not None:
        return decorator(func)
    return decorator


# =============================================================================
# STATIC PROPERTY
# =============================================================================

class static_property:
    """Class-level property whose value lives in a backing attribute.

    The backing attribute is created when the owning class is created (or
    when the declaration is re-stored by a reload) and is what a reload
    resets. Reading goes through the class or an instance; writing goes
    through an instance or assign_static().
    """

    def __init__(self, default: Any = None):
        self.default = default
        self.name: Optional[str] = None
        self.backing_name: Optional[str] = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name
        self.backing_name = backing_field_name(name)
        setattr(owner, self.backing_name, self.default)

    def __get__(self, instance: Any, owner: Optional[type] = None) -> Any:
        if owner is None:
            owner = type(instance)
        if self.backing_name is None:
            raise AttributeError("static_property used outside a class body")
        return getattr(owner, self.backing_name)

    def __set__(self, instance: Any, value: Any) -> None:
        setattr(type(instance), self.backing_name, value)

    def __repr__(self) -> str:
        return f"static_property({self.name!r})"


def assign_static(owner: type, name: str, value: Any) -> None:
    """Assign a class-level value, writing through a static_property when one is declared."""
    for klass in owner.__mro__:
        declared = klass.__dict__.get(name)
        if isinstance(declared, static_property):
            setattr(owner, declared.backing_name, value)
            return
        if name in klass.__dict__:
            break
    setattr(owner, name, value)


# =============================================================================
# STATIC EVENT
# =============================================================================

class StaticEvent:
    """Class-level multicast event.

    Handlers subscribe with += (or subscribe()) and run in subscription order
    when the event fires. A reload replaces the event with a fresh one, so
    handlers subscribed before the reload are dropped.
    """

    def __init__(self):
        self._handlers: List[Callable[..., Any]] = []

    def subscribe(self, handler: Callable[..., Any]) -> Callable[..., Any]:
        self._handlers.append(handler)
        return handler

    def unsubscribe(self, handler: Callable[..., Any]) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def __iadd__(self, handler: Callable[..., Any]) -> 'StaticEvent':
        self.subscribe(handler)
        return self

    def __isub__(self, handler: Callable[..., Any]) -> 'StaticEvent':
        self.unsubscribe(handler)
        return self

    def fire(self, *args, **kwargs) -> None:
        for handler in list(self._handlers):
            handler(*args, **kwargs)

    __call__ = fire

    def __len__(self) -> int:
        return len(self._handlers)

    def __repr__(self) -> str:
        return f"<StaticEvent handlers={len(self._handlers)}>"


def static_event() -> StaticEvent:
    """Declare a class-level event."""
    return StaticEvent()
