"""
Static state inventory: which class-level storage a reload resets.

Pure analysis over a TypeDefinition. An empty inventory is a normal result.
"""

from typing import List, Set

from typereload.model import (
    MARKER_NEVER_RELOAD,
    FieldDefinition,
    TypeDefinition,
    backing_field_name,
    get_marker,
    mangle,
)


def build_inventory(type_def: TypeDefinition) -> List[FieldDefinition]:
    """Ordered static storage of type_def that a reload resets.

    Every static field not individually opted out, minus the generated backing
    field of each opted-out static property and static event.
    """
    static_fields: List[FieldDefinition] = []
    _filter_static_fields(type_def, static_fields)
    _filter_static_properties(type_def, static_fields)
    _filter_static_events(type_def, static_fields)
    return static_fields


def _filter_static_fields(type_def: TypeDefinition, out_static_fields: List[FieldDefinition]) -> None:
    for field_def in type_def.fields:
        if not field_def.is_static:
            continue
        if get_marker(field_def.markers, MARKER_NEVER_RELOAD) is not None:
            continue
        out_static_fields.append(field_def)


def _remove_generated_field(static_fields: List[FieldDefinition], name: str) -> None:
    """Remove the first field called name, but only when it is generated storage."""
    for index, field_def in enumerate(static_fields):
        if field_def.name == name:
            if field_def.is_generated:
                del static_fields[index]
            return


def _filter_static_properties(type_def: TypeDefinition, static_fields: List[FieldDefinition]) -> None:
    for prop in type_def.properties:
        if prop.getter_is_static is False or prop.setter_is_static is False:
            continue
        if get_marker(prop.markers, MARKER_NEVER_RELOAD) is None:
            continue
        _remove_generated_field(static_fields, backing_field_name(mangle(type_def.name, prop.name)))


def _filter_static_events(type_def: TypeDefinition, static_fields: List[FieldDefinition]) -> None:
    for event in type_def.events:
        if not event.add_is_static or not event.remove_is_static:
            continue
        if get_marker(event.markers, MARKER_NEVER_RELOAD) is None:
            continue
        _remove_generated_field(static_fields, event.name)


def opted_out_names(type_def: TypeDefinition) -> Set[str]:
    """Class-body names whose declarations a reload must not replay.

    Opted-out fields, static properties and static events keep their last
    value across a reload, so the copied initializer drops stores to them.
    """
    names = {
        f.name for f in type_def.fields
        if not f.is_generated and get_marker(f.markers, MARKER_NEVER_RELOAD) is not None
    }
    names.update(p.name for p in type_def.properties if get_marker(p.markers, MARKER_NEVER_RELOAD) is not None)
    names.update(e.name for e in type_def.events if get_marker(e.markers, MARKER_NEVER_RELOAD) is not None)
    return names
