"""Initializer copier: duplicates a class body's state statements into a callable unit."""

import copy
import logging
from typing import Optional

from typereload.model import MARKER_GENERATED, Marker, MethodDefinition, MethodKind, TypeDefinition

logger = logging.getLogger(__name__)

INIT_COPY_NAME = '__typereload_init_copy'


def copy_initializer(type_def: TypeDefinition) -> Optional[MethodDefinition]:
    """Clone type_def's initializer into a private generated unit, or None if it has none.

    Statements are deep-copied with everything nested in them (locals,
    try/except/finally regions, loops), so later rewriting of the copy never
    touches the original class body.
    """
    if type_def.initializer is None:
        return None

    method = MethodDefinition(
        name=INIT_COPY_NAME,
        kind=MethodKind.STATIC,
        markers=[Marker(name=MARKER_GENERATED)],
        is_generated=True,
        source_body=[copy.deepcopy(stmt) for stmt in type_def.initializer],
    )
    type_def.add_method(method)
    logger.debug(f"Copied {len(method.source_body)} initializer statement(s) of {type_def.lexical_path}")
    return method
