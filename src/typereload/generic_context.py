"""
Generic context rewriting for synthesized units.

A unit synthesized for a generic class must reach its members through the
class *as instantiated*, never through the open definition: every reified
instantiation (Box[int], Box[str], ...) owns its own storage, and a raw
reference would always hit the origin's. The rewriter replaces each member
reference's declaring type with the identity instantiation (the class applied
to its own parameters, in declaration order), and makes the unit a
classmethod so the emitter can render that instantiation as `cls`.

Non-generic classes pass through unchanged.
"""

import logging

from typereload.errors import GenericContextError
from typereload.model import (
    CallMethod,
    FieldReference,
    GenericInstanceType,
    Instruction,
    MethodDefinition,
    MethodKind,
    MethodReference,
    ResetField,
    TypeDefinition,
    TypeReference,
)

logger = logging.getLogger(__name__)


def qualify_type(type_def: TypeDefinition) -> TypeReference:
    """Identity instantiation of type_def when generic; type_def itself otherwise.

    Raises:
        GenericContextError: a type parameter cannot be resolved to a plain name
    """
    if not type_def.has_generic_parameters:
        return type_def
    unresolved = [p.name for p in type_def.generic_parameters if not p.resolved]
    if unresolved:
        raise GenericContextError(
            f"Cannot resolve type parameter(s) {', '.join(unresolved)} of {type_def.lexical_path}"
        )
    return GenericInstanceType(element_type=type_def, arguments=tuple(type_def.generic_parameters))


def _qualified_declaring_type(declaring_type: TypeReference) -> TypeReference:
    if isinstance(declaring_type, TypeDefinition):
        return qualify_type(declaring_type)
    return declaring_type


def qualify_field(ref: FieldReference) -> FieldReference:
    return FieldReference(ref.definition, _qualified_declaring_type(ref.declaring_type))


def qualify_method(ref: MethodReference) -> MethodReference:
    return MethodReference(ref.definition, _qualified_declaring_type(ref.declaring_type))


def _qualify_instruction(instruction: Instruction) -> Instruction:
    if isinstance(instruction, ResetField):
        return ResetField(qualify_field(instruction.target), instruction.zero)
    if isinstance(instruction, CallMethod):
        return CallMethod(qualify_method(instruction.method))
    raise TypeError(f"Unknown instruction: {instruction!r}")


def qualify_unit(unit: MethodDefinition) -> MethodDefinition:
    """Rewrite every reference unit makes so it resolves through the instantiated class.

    Also fixes how the unit binds: a classmethod when its class is generic,
    a staticmethod otherwise.
    """
    owner = qualify_type(unit.declaring_type)
    unit.owner = owner
    unit.body = [_qualify_instruction(instruction) for instruction in unit.body]
    if isinstance(owner, GenericInstanceType):
        unit.kind = MethodKind.CLASS
        unit.parameters = ['cls']
        logger.debug(f"Qualified {unit.name} of generic {unit.declaring_type.lexical_path}")
    else:
        unit.kind = MethodKind.STATIC
        unit.parameters = []
    return unit
