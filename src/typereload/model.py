"""
Metadata model the weaver analyzes and mutates.

The model is a thin typed view over a parsed module: every definition keeps a
pointer to the syntax node it was read from, and synthesized units are added
to it as new MethodDefinitions before being emitted back into the tree.

Design Philosophy:
- Definitions compare by identity (two fields with the same name on different
  classes are different fields)
- References are separate from definitions: a reference names a member
  *through* a type, which is either the open definition or an instantiation
  of it (GenericInstanceType)
- Markers are pure data (name + keyword expressions), never evaluated
"""

import ast
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Set, Tuple, Union


MARKER_NEVER_RELOAD = 'never_reload'
MARKER_ON_TYPE_UNLOAD = 'on_type_unload'
MARKER_GENERATED = 'generated'


# =============================================================================
# MARKERS
# =============================================================================

@dataclass(eq=False)
class Marker:
    """A declarative marker read from a decorator or an Annotated entry."""
    name: str
    keywords: Dict[str, ast.expr] = field(default_factory=dict)


def get_marker(markers: List[Marker], name: str) -> Optional[Marker]:
    """Return the first marker with the given name, or None."""
    for marker in markers:
        if marker.name == name:
            return marker
    return None


# =============================================================================
# DEFINITIONS
# =============================================================================

@dataclass(eq=False)
class GenericParameter:
    """A type parameter owned by a class.

    resolved is False when the parameter was listed as something other than a
    plain type variable name (e.g. Generic[make_var()]).
    """
    name: str
    resolved: bool = True


@dataclass(eq=False)
class FieldDefinition:
    """One unit of class-level storage.

    name is the identifier as it appears in generated code; runtime_name is
    the attribute name after private-name mangling.
    """
    name: str
    runtime_name: str
    annotation: Optional[ast.expr] = None
    markers: List[Marker] = field(default_factory=list)
    is_static: bool = True
    is_generated: bool = False
    declaring_type: Optional['TypeDefinition'] = None


@dataclass(eq=False)
class PropertyDefinition:
    """A property declared in a class body."""
    name: str
    markers: List[Marker] = field(default_factory=list)
    getter_is_static: Optional[bool] = None
    setter_is_static: Optional[bool] = None
    declaring_type: Optional['TypeDefinition'] = None


@dataclass(eq=False)
class EventDefinition:
    """An event declared in a class body."""
    name: str
    markers: List[Marker] = field(default_factory=list)
    add_is_static: bool = True
    remove_is_static: bool = True
    declaring_type: Optional['TypeDefinition'] = None


class MethodKind(Enum):
    """How a function in a class body binds when accessed."""
    PLAIN = 'plain'
    STATIC = 'static'
    CLASS = 'class'
    INSTANCE = 'instance'


@dataclass(frozen=True)
class ResetField:
    """Synthesized instruction: store the zero value into a field."""
    target: 'FieldReference'
    zero: object


@dataclass(frozen=True)
class CallMethod:
    """Synthesized instruction: call a zero-argument method."""
    method: 'MethodReference'


Instruction = Union[ResetField, CallMethod]


@dataclass(eq=False)
class MethodDefinition:
    """A function declared in, or synthesized for, a class body."""
    name: str
    kind: MethodKind = MethodKind.PLAIN
    parameters: List[str] = field(default_factory=list)
    returns: Optional[ast.expr] = None
    generic_parameters: List[GenericParameter] = field(default_factory=list)
    is_async: bool = False
    markers: List[Marker] = field(default_factory=list)
    is_generated: bool = False
    declaring_type: Optional['TypeDefinition'] = None
    # Synthesized units only: either instructions or cloned class-body statements
    body: List[Instruction] = field(default_factory=list)
    source_body: Optional[List[ast.stmt]] = None
    # Type through which a unit reaches its own class; set by the generic context rewriter
    owner: Optional['TypeReference'] = None

    @property
    def has_parameters(self) -> bool:
        """Whether calling the method requires arguments beyond the implicit class."""
        if self.kind is MethodKind.CLASS:
            return len(self.parameters) > 1
        return len(self.parameters) > 0

    @property
    def returns_nothing(self) -> bool:
        if self.returns is None:
            return True
        return isinstance(self.returns, ast.Constant) and self.returns.value is None


@dataclass(eq=False)
class TypeDefinition:
    """A class statement, possibly generic, possibly nested in another class."""
    name: str
    node: ast.ClassDef
    declaring_type: Optional['TypeDefinition'] = None
    nested_types: List['TypeDefinition'] = field(default_factory=list)
    fields: List[FieldDefinition] = field(default_factory=list)
    properties: List[PropertyDefinition] = field(default_factory=list)
    events: List[EventDefinition] = field(default_factory=list)
    methods: List[MethodDefinition] = field(default_factory=list)
    generic_parameters: List[GenericParameter] = field(default_factory=list)
    markers: List[Marker] = field(default_factory=list)
    # State statements of the class body; None when there are none
    initializer: Optional[List[ast.stmt]] = None
    # Every name the class body binds as a class attribute (state, methods, nested classes, imports)
    scope_names: Set[str] = field(default_factory=set)
    # Enum classes: members cannot be rebound, so the body is not read
    is_enum: bool = False

    @property
    def has_generic_parameters(self) -> bool:
        return bool(self.generic_parameters)

    @property
    def lexical_path(self) -> str:
        """Dotted path from the module namespace, e.g. 'Outer.Inner'."""
        if self.declaring_type is None:
            return self.name
        return f"{self.declaring_type.lexical_path}.{self.name}"

    def find_field(self, name: str) -> Optional[FieldDefinition]:
        for field_def in self.fields:
            if field_def.name == name:
                return field_def
        return None

    def add_method(self, method: MethodDefinition) -> MethodDefinition:
        method.declaring_type = self
        self.methods.append(method)
        return method

    def __repr__(self) -> str:
        return f"<TypeDefinition {self.lexical_path}>"


@dataclass(eq=False)
class ModuleDefinition:
    """A parsed module and its class tree."""
    name: str
    tree: ast.Module
    types: List[TypeDefinition] = field(default_factory=list)

    def all_types(self) -> Iterator[TypeDefinition]:
        """Walk every class, nested ones included, depth-first in declaration order."""
        stack = list(reversed(self.types))
        while stack:
            type_def = stack.pop()
            stack.extend(reversed(type_def.nested_types))
            yield type_def


# =============================================================================
# REFERENCES
# =============================================================================

@dataclass(frozen=True, eq=False)
class GenericInstanceType:
    """A generic class instantiated with explicit type arguments."""
    element_type: TypeDefinition
    arguments: Tuple[GenericParameter, ...]

    @property
    def is_identity(self) -> bool:
        """Whether the arguments are exactly the class's own parameters, in order."""
        own = self.element_type.generic_parameters
        return len(own) == len(self.arguments) and all(a is b for a, b in zip(own, self.arguments))


TypeReference = Union[TypeDefinition, GenericInstanceType]


@dataclass(frozen=True)
class FieldReference:
    """A field named through a type reference."""
    definition: FieldDefinition
    declaring_type: TypeReference

    @property
    def name(self) -> str:
        return self.definition.name


@dataclass(frozen=True)
class MethodReference:
    """A method named through a type reference."""
    definition: MethodDefinition
    declaring_type: TypeReference

    @property
    def name(self) -> str:
        return self.definition.name


def field_ref(field_def: FieldDefinition) -> FieldReference:
    """Raw reference to a field through its open declaring class."""
    return FieldReference(field_def, field_def.declaring_type)


def method_ref(method: MethodDefinition) -> MethodReference:
    """Raw reference to a method through its open declaring class."""
    return MethodReference(method, method.declaring_type)


def mangle(class_name: str, name: str) -> str:
    """Apply Python's private-name mangling for a name used inside class_name."""
    if not name.startswith('__') or name.endswith('__') or '.' in name:
        return name
    stripped = class_name.lstrip('_')
    if not stripped:
        return name
    return f"_{stripped}{name}"


def backing_field_name(property_runtime_name: str) -> str:
    """Attribute holding a static_property's value. Ends in '__' so it is never mangled."""
    return f"{property_runtime_name}__backing__"
