"""Unload callback collection and ordering."""

import ast
import logging
from dataclasses import dataclass
from typing import List

from typereload.model import MARKER_ON_TYPE_UNLOAD, MethodDefinition, TypeDefinition, get_marker

logger = logging.getLogger(__name__)

ORDER_KEYWORD = 'order'
DEFAULT_ORDER = 0


@dataclass(frozen=True)
class UnloadCallback:
    """A method to run before its class is reset. Lower order runs earlier."""
    method: MethodDefinition
    order: int = DEFAULT_ORDER


def collect_unload_callbacks(type_def: TypeDefinition) -> List[UnloadCallback]:
    """Qualifying on_type_unload methods of type_def, sorted by ascending order.

    A method qualifies when it is synchronous, takes no type parameters and no
    parameters (beyond the implicit class of a classmethod), returns nothing,
    and carries the on_type_unload marker. Ties keep declaration order, but
    that is not part of the contract.
    """
    callbacks = []
    for method in type_def.methods:
        if method.is_generated or method.generic_parameters or method.is_async:
            continue
        if method.has_parameters or not method.returns_nothing:
            continue
        marker = get_marker(method.markers, MARKER_ON_TYPE_UNLOAD)
        if marker is None:
            continue
        callbacks.append(UnloadCallback(method=method, order=_read_order(type_def, method, marker.keywords)))

    return sorted(callbacks, key=lambda callback: callback.order)


def _read_order(type_def: TypeDefinition, method: MethodDefinition, keywords) -> int:
    expr = keywords.get(ORDER_KEYWORD)
    if expr is None:
        return DEFAULT_ORDER
    try:
        value = ast.literal_eval(expr)
    except (ValueError, TypeError):
        value = None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    logger.warning(
        f"Unreadable unload order on {type_def.lexical_path}.{method.name}: "
        f"{ast.unparse(expr)!r}; using {DEFAULT_ORDER}"
    )
    return DEFAULT_ORDER
