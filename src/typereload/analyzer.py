"""Eligibility analysis: does a class take part in reloads at all?"""

import logging
from dataclasses import dataclass, field
from typing import List

from typereload.callbacks import UnloadCallback, collect_unload_callbacks
from typereload.inventory import build_inventory
from typereload.model import MARKER_NEVER_RELOAD, FieldDefinition, TypeDefinition, get_marker

logger = logging.getLogger(__name__)


@dataclass
class Analysis:
    """What a reload must do for one class."""
    type_def: TypeDefinition
    static_fields: List[FieldDefinition] = field(default_factory=list)
    unload_callbacks: List[UnloadCallback] = field(default_factory=list)
    opted_out: bool = False
    unsupported: bool = False

    @property
    def eligible(self) -> bool:
        if self.opted_out or self.unsupported:
            return False
        return bool(self.static_fields or self.unload_callbacks)


def analyze(type_def: TypeDefinition) -> Analysis:
    """Analyze type_def. Opted-out classes and enums are not inspected further."""
    if type_def.is_enum:
        logger.debug(f"Skipping {type_def.lexical_path}: enum members cannot be rebound")
        return Analysis(type_def=type_def, unsupported=True)
    if get_marker(type_def.markers, MARKER_NEVER_RELOAD) is not None:
        logger.debug(f"Skipping {type_def.lexical_path}: never_reload")
        return Analysis(type_def=type_def, opted_out=True)

    analysis = Analysis(
        type_def=type_def,
        static_fields=build_inventory(type_def),
        unload_callbacks=collect_unload_callbacks(type_def),
    )
    if not analysis.eligible:
        logger.debug(f"Skipping {type_def.lexical_path}: no static state and no unload callbacks")
    return analysis
