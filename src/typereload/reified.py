"""
Reified generic instantiations - one real class per concrete parameterization.

A woven generic class keeps per-instantiation class state: `Box[int]` and
`Box[str]` are distinct subclasses of `Box`, each with its own class
attributes, created once and cached. The first time an instantiation is
requested it is created, initialized (its class state set up from scratch) and
registered for reloads, under a lock held per instantiation so that racing
threads agree on a single class object that is initialized exactly once.

Subscripting with type variables (`Box[T]`, as in `class Sub(Box[T])`) keeps
the standard typing behavior.

Usage:
    install_reified_getitem(Box, initialize)

    Box[int] is Box[int]          # True
    Box[int].count is Box.count   # only until Box[int] sets its own
    get_reified_args(Box[int])    # (int,)
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

Initialize = Callable[[type], None]

# =============================================================================
# TYPE CACHE
# =============================================================================

_reified_cache: Dict[Tuple[type, tuple], type] = {}
_instantiation_locks: Dict[Tuple[type, tuple], threading.Lock] = {}
_cache_lock = threading.Lock()


def _get_cached_type(origin: type, args: tuple) -> Optional[type]:
    """Get a cached reified type, or None."""
    return _reified_cache.get((origin, args))


def _cache_type(origin: type, args: tuple, reified_type: type) -> None:
    """Cache a reified type."""
    with _cache_lock:
        _reified_cache[(origin, args)] = reified_type


def _instantiation_lock(origin: type, args: tuple) -> threading.Lock:
    with _cache_lock:
        return _instantiation_locks.setdefault((origin, args), threading.Lock())


def _describe(arg: Any) -> str:
    return arg.__name__ if hasattr(arg, '__name__') else repr(arg)


def _is_open(arg: Any) -> bool:
    """Whether arg still contains type variables (T, List[T], ...)."""
    if isinstance(arg, TypeVar) or type(arg).__name__ in ('ParamSpec', 'TypeVarTuple'):
        return True
    return bool(getattr(arg, '__parameters__', ()))


# =============================================================================
# REIFIED TYPE FACTORY
# =============================================================================

def _make_reified_type(origin: type, args: tuple, initialize: Initialize) -> type:
    """Get or create the class for origin[args], initializing it once."""
    cached = _get_cached_type(origin, args)
    if cached is not None:
        return cached

    with _instantiation_lock(origin, args):
        cached = _get_cached_type(origin, args)
        if cached is not None:
            return cached

        args_str = ', '.join(_describe(arg) for arg in args)
        type_name = f'{origin.__name__}[{args_str}]'

        # Same metaclass as the origin, so instantiations behave like it
        reified_type = type(origin)(
            type_name,
            (origin,),
            {
                '__origin__': origin,
                '__args__': args,
                '__reified__': True,
                '__module__': origin.__module__,
                '__qualname__': f'{origin.__qualname__}[{args_str}]',
            }
        )
        # Published only once initialized; a failure leaves nothing cached
        initialize(reified_type)
        _cache_type(origin, args, reified_type)
        logger.debug(f"Created reified instantiation {origin.__module__}.{reified_type.__qualname__}")
        return reified_type


def install_reified_getitem(origin: type, initialize: Initialize) -> None:
    """Make origin[args] return a cached, initialized subclass per concrete args."""

    def __class_getitem__(cls, params):
        if not isinstance(params, tuple):
            params = (params,)
        if cls is not origin or any(_is_open(param) for param in params):
            return super(origin, cls).__class_getitem__(params)
        return _make_reified_type(origin, params, initialize)

    origin.__class_getitem__ = classmethod(__class_getitem__)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def is_reified(t: type) -> bool:
    """Check if a type is a reified instantiation."""
    return t.__dict__.get('__reified__', False) if isinstance(t, type) else False


def get_reified_args(t: type) -> tuple:
    """Get type arguments from a reified type."""
    return t.__dict__.get('__args__', ()) if is_reified(t) else ()


def get_reified_origin(t: type) -> type:
    """Get origin type from a reified type."""
    return t.__dict__.get('__origin__', t) if is_reified(t) else t


def reified_instantiations(origin: type) -> Dict[tuple, type]:
    """Every instantiation of origin created so far, keyed by args."""
    with _cache_lock:
        return {args: t for (o, args), t in _reified_cache.items() if o is origin}


def clear_cache() -> None:
    """Clear the reified type cache (for testing)."""
    with _cache_lock:
        _reified_cache.clear()
        _instantiation_locks.clear()
