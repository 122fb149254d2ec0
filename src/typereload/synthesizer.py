"""
Load/unload unit synthesis.

- Unload unit: calls the sorted unload callbacks, in order
- Load unit: resets every inventoried field to its zero value, in inventory
  order, then calls the copied initializer

Zero values follow the declared annotation (see config.DEFAULT_ZERO_VALUES):
the value storage holds before any initializer ran, never a previously
observed value.
"""

import ast
import logging
from typing import List, Optional

from typereload.callbacks import UnloadCallback
from typereload.config import get_reload_config
from typereload.model import (
    MARKER_GENERATED,
    CallMethod,
    FieldDefinition,
    Marker,
    MethodDefinition,
    MethodKind,
    ResetField,
    TypeDefinition,
    field_ref,
    method_ref,
)
from typereload.reader import ANNOTATION_WRAPPERS, terminal_name

logger = logging.getLogger(__name__)

UNLOAD_UNIT_NAME = '__typereload_unload'
LOAD_UNIT_NAME = '__typereload_load'

# Values an ast.Constant can carry
_CONSTANT_TYPES = (int, float, complex, bool, str, bytes, type(None))


def _generated_unit(name: str) -> MethodDefinition:
    return MethodDefinition(
        name=name,
        kind=MethodKind.STATIC,
        markers=[Marker(name=MARKER_GENERATED)],
        is_generated=True,
    )


def synthesize_unload_unit(type_def: TypeDefinition, callbacks: List[UnloadCallback]) -> Optional[MethodDefinition]:
    """Build the unit invoking callbacks in sorted order, or None when there are none."""
    if not callbacks:
        return None

    method = _generated_unit(UNLOAD_UNIT_NAME)
    method.body = [CallMethod(method_ref(callback.method)) for callback in callbacks]
    type_def.add_method(method)
    return method


def synthesize_load_unit(
    type_def: TypeDefinition,
    static_fields: List[FieldDefinition],
    copied_initializer: Optional[MethodDefinition],
) -> Optional[MethodDefinition]:
    """Build the unit resetting static_fields then re-running the initializer copy.

    Returns None when there is nothing to reset and no initializer to re-run.
    """
    if not static_fields and copied_initializer is None:
        return None

    method = _generated_unit(LOAD_UNIT_NAME)
    method.body = [ResetField(field_ref(field_def), zero_value(field_def.annotation)) for field_def in static_fields]
    if copied_initializer is not None:
        method.body.append(CallMethod(method_ref(copied_initializer)))
    type_def.add_method(method)
    return method


def _unwrap_annotation(annotation: Optional[ast.expr]) -> Optional[ast.expr]:
    """Look through Annotated/ClassVar/Final to the storage type."""
    while isinstance(annotation, ast.Subscript) and terminal_name(annotation.value) in ANNOTATION_WRAPPERS | {'Annotated'}:
        annotation = annotation.slice.elts[0] if isinstance(annotation.slice, ast.Tuple) else annotation.slice
    return annotation


def zero_value(annotation: Optional[ast.expr]) -> object:
    """Zero value for storage declared with annotation (None when unannotated or unknown)."""
    annotation = _unwrap_annotation(annotation)
    if isinstance(annotation, ast.Constant) and isinstance(annotation.value, str):
        type_name = annotation.value.rsplit('.', 1)[-1]
    elif annotation is not None:
        type_name = terminal_name(annotation)
    else:
        type_name = None

    zero = get_reload_config().zero_values.get(type_name)
    if not isinstance(zero, _CONSTANT_TYPES):
        logger.warning(f"Zero value {zero!r} for {type_name!r} is not a literal; using None")
        return None
    return zero
