"""
Module reader: builds the metadata model from a parsed module.

Only module-level classes and classes nested in class bodies are read; a class
statement inside a function runs once per call and has no single identity.

What counts as what in a class body:
- State statements (the class initializer): every top-level statement except
  def/async def/class statements, imports, the docstring, `pass`/`...`,
  annotation-only declarations, and statements binding only dunder names
- Fields: names a state statement stores to, plus `x: ClassVar[T]` declarations
- Static properties: `name = static_property(...)`, backed by a generated field
- Static events: `name = static_event()`, backed by a generated field of the same name
- Markers: decorators and `Annotated[...]` metadata, matched by name only

Enum classes (an enum base, a base named like one, or an enum metaclass) are
recorded but their bodies are not read: their members cannot be rebound.
"""

import ast
import logging
from typing import Iterable, List, Optional, Set, Tuple

from typereload.model import (
    MARKER_GENERATED,
    MARKER_NEVER_RELOAD,
    MARKER_ON_TYPE_UNLOAD,
    EventDefinition,
    FieldDefinition,
    GenericParameter,
    Marker,
    MethodDefinition,
    MethodKind,
    ModuleDefinition,
    PropertyDefinition,
    TypeDefinition,
    backing_field_name,
    mangle,
)

logger = logging.getLogger(__name__)

KNOWN_MARKERS = frozenset({MARKER_NEVER_RELOAD, MARKER_ON_TYPE_UNLOAD, MARKER_GENERATED})
GENERIC_BASES = frozenset({'Generic', 'Protocol'})
ANNOTATION_WRAPPERS = frozenset({'ClassVar', 'Final'})
PROPERTY_DECLARATION = 'static_property'
EVENT_DECLARATION = 'static_event'
ENUM_SUFFIXES = ('Enum', 'Flag')
ENUM_METACLASS_SUFFIXES = ('EnumMeta', 'EnumType')


def read_module(tree: ast.Module, module_name: str) -> ModuleDefinition:
    """Read every module-level class (and its nested classes) into the model."""
    module = ModuleDefinition(name=module_name, tree=tree)
    enum_names: Set[str] = set()
    for stmt in tree.body:
        if isinstance(stmt, ast.ClassDef):
            module.types.append(read_type(stmt, enum_names=enum_names))
    logger.debug(f"Read module {module_name}: {sum(1 for _ in module.all_types())} class(es)")
    return module


# =============================================================================
# SYNTAX HELPERS
# =============================================================================

def terminal_name(expr: ast.expr) -> Optional[str]:
    """'never_reload' for never_reload, tr.never_reload and pkg.mod.never_reload."""
    if isinstance(expr, ast.Name):
        return expr.id
    if isinstance(expr, ast.Attribute):
        return expr.attr
    return None


def is_dunder(name: str) -> bool:
    return len(name) > 4 and name.startswith('__') and name.endswith('__')


def marker_from_expr(expr: ast.expr) -> Optional[Marker]:
    """Interpret a decorator or Annotated entry as a marker, or None if it is not one."""
    call = expr if isinstance(expr, ast.Call) else None
    name = terminal_name(call.func if call else expr)
    if name not in KNOWN_MARKERS:
        return None
    keywords = {kw.arg: kw.value for kw in call.keywords if kw.arg} if call else {}
    return Marker(name=name, keywords=keywords)


def markers_from(exprs: Iterable[ast.expr]) -> List[Marker]:
    markers = []
    for expr in exprs:
        marker = marker_from_expr(expr)
        if marker is not None:
            markers.append(marker)
    return markers


def _subscript_items(node: ast.Subscript) -> List[ast.expr]:
    if isinstance(node.slice, ast.Tuple):
        return list(node.slice.elts)
    return [node.slice]


def annotation_markers(annotation: Optional[ast.expr]) -> List[Marker]:
    """Markers carried in Annotated[...] metadata, looking through ClassVar/Final."""
    if not isinstance(annotation, ast.Subscript):
        return []
    wrapper = terminal_name(annotation.value)
    items = _subscript_items(annotation)
    if wrapper == 'Annotated':
        return annotation_markers(items[0]) + markers_from(items[1:])
    if wrapper in ANNOTATION_WRAPPERS:
        return annotation_markers(items[0])
    return []


def is_classvar(annotation: Optional[ast.expr]) -> bool:
    if annotation is None:
        return False
    if terminal_name(annotation) == 'ClassVar':
        return True
    if isinstance(annotation, ast.Subscript):
        wrapper = terminal_name(annotation.value)
        if wrapper == 'ClassVar':
            return True
        if wrapper == 'Annotated':
            return is_classvar(_subscript_items(annotation)[0])
    return False


def is_enum_class(node: ast.ClassDef, enum_names: Iterable[str] = ()) -> bool:
    """Whether node declares an enum: an enum base (by name or an enum of this module) or an enum metaclass."""
    for base in node.bases:
        name = terminal_name(base)
        if name is not None and (name.endswith(ENUM_SUFFIXES) or name in enum_names):
            return True
    for keyword in node.keywords:
        if keyword.arg == 'metaclass':
            name = terminal_name(keyword.value)
            if name is not None and name.endswith(ENUM_METACLASS_SUFFIXES):
                return True
    return False


def declaration_kind(value: Optional[ast.expr]) -> Optional[str]:
    """PROPERTY_DECLARATION / EVENT_DECLARATION when value declares one, else None."""
    if isinstance(value, ast.Call):
        name = terminal_name(value.func)
        if name in (PROPERTY_DECLARATION, EVENT_DECLARATION):
            return name
    return None


class BoundNames(ast.NodeVisitor):
    """Collect the names a statement binds in the scope it runs in.

    Nested scopes (functions, lambdas, classes, comprehension bodies) are not
    entered. Imports and nested def/class names are kept apart from plain
    stores. Exception and match-capture names are transient and not collected.
    """

    def __init__(self):
        self.stores: List[str] = []
        self.declarations: List[str] = []

    @staticmethod
    def _add(names: List[str], name: str) -> None:
        if name not in names:
            names.append(name)

    def visit_Name(self, node: ast.Name) -> None:
        if isinstance(node.ctx, (ast.Store, ast.Del)):
            self._add(self.stores, node.id)

    def visit_FunctionDef(self, node) -> None:
        for decorator in node.decorator_list:
            self.visit(decorator)
        self._add(self.declarations, node.name)

    visit_AsyncFunctionDef = visit_FunctionDef

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        for expr in node.decorator_list + node.bases:
            self.visit(expr)
        self._add(self.declarations, node.name)

    def visit_Lambda(self, node: ast.Lambda) -> None:
        for default in node.args.defaults + [d for d in node.args.kw_defaults if d is not None]:
            self.visit(default)

    def _visit_comprehension(self, node) -> None:
        # Only the first iterable is evaluated in the enclosing scope
        self.visit(node.generators[0].iter)

    visit_ListComp = _visit_comprehension
    visit_SetComp = _visit_comprehension
    visit_DictComp = _visit_comprehension
    visit_GeneratorExp = _visit_comprehension

    def visit_Import(self, node) -> None:
        for alias in node.names:
            if alias.name != '*':
                self._add(self.declarations, alias.asname or alias.name.split('.')[0])

    visit_ImportFrom = visit_Import


def bound_names(stmt: ast.stmt) -> BoundNames:
    collector = BoundNames()
    collector.visit(stmt)
    return collector


# =============================================================================
# GENERIC PARAMETERS
# =============================================================================

def read_generic_parameters(node) -> List[GenericParameter]:
    """Own type parameters: PEP 695 `class Box[T]` or the Generic[...]/Protocol[...] base."""
    type_params = getattr(node, 'type_params', None) or []
    if type_params:
        return [GenericParameter(name=param.name) for param in type_params]

    for base in getattr(node, 'bases', []):
        if not isinstance(base, ast.Subscript) or terminal_name(base.value) not in GENERIC_BASES:
            continue
        parameters = []
        for item in _subscript_items(base):
            if isinstance(item, ast.Starred):
                item = item.value
            elif isinstance(item, ast.Subscript) and terminal_name(item.value) == 'Unpack':
                item = item.slice
            if isinstance(item, ast.Name):
                parameters.append(GenericParameter(name=item.id))
            else:
                parameters.append(GenericParameter(name=ast.unparse(item), resolved=False))
        return parameters
    return []


# =============================================================================
# METHODS
# =============================================================================

def read_method(node) -> MethodDefinition:
    decorator_names = {terminal_name(d.func if isinstance(d, ast.Call) else d) for d in node.decorator_list}
    args = node.args
    parameters = [a.arg for a in args.posonlyargs + args.args + args.kwonlyargs]
    if args.vararg:
        parameters.append(args.vararg.arg)
    if args.kwarg:
        parameters.append(args.kwarg.arg)

    if 'staticmethod' in decorator_names:
        kind = MethodKind.STATIC
    elif 'classmethod' in decorator_names:
        kind = MethodKind.CLASS
    elif parameters:
        kind = MethodKind.INSTANCE
    else:
        kind = MethodKind.PLAIN

    markers = markers_from(node.decorator_list)
    return MethodDefinition(
        name=node.name,
        kind=kind,
        parameters=parameters,
        returns=node.returns,
        generic_parameters=read_generic_parameters(node),
        is_async=isinstance(node, ast.AsyncFunctionDef),
        markers=markers,
        is_generated=any(m.name == MARKER_GENERATED for m in markers),
    )


def _read_instance_property(type_def: TypeDefinition, node) -> None:
    """Record @property / @x.setter accessors; their accessors take self, so they are never static."""
    for decorator in node.decorator_list:
        if terminal_name(decorator) == 'property':
            type_def.properties.append(PropertyDefinition(
                name=node.name,
                markers=markers_from(node.decorator_list),
                getter_is_static=False,
                declaring_type=type_def,
            ))
        elif isinstance(decorator, ast.Attribute) and decorator.attr in ('setter', 'deleter'):
            for prop in type_def.properties:
                if prop.name == terminal_name(decorator.value):
                    prop.setter_is_static = False


# =============================================================================
# TYPES
# =============================================================================

def _is_docstring(stmt: ast.stmt, index: int) -> bool:
    return (index == 0 and isinstance(stmt, ast.Expr) and isinstance(stmt.value, ast.Constant)
            and isinstance(stmt.value.value, str))


def _is_noop(stmt: ast.stmt) -> bool:
    if isinstance(stmt, ast.Pass):
        return True
    return isinstance(stmt, ast.Expr) and isinstance(stmt.value, ast.Constant) and stmt.value.value is Ellipsis


def _single_target(stmt: ast.stmt) -> Tuple[Optional[str], Optional[ast.expr], Optional[ast.expr]]:
    """(name, annotation, value) for `x = v` / `x: T = v` / `x: T`, else (None, None, None)."""
    if isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
        return stmt.target.id, stmt.annotation, stmt.value
    if isinstance(stmt, ast.Assign) and len(stmt.targets) == 1 and isinstance(stmt.targets[0], ast.Name):
        return stmt.targets[0].id, None, stmt.value
    return None, None, None


class _TypeReader:
    """Reads one class body into a TypeDefinition."""

    def __init__(self, node: ast.ClassDef, declaring_type: Optional[TypeDefinition], enum_names: Set[str]):
        self.enum_names = enum_names
        self.type_def = TypeDefinition(
            name=node.name,
            node=node,
            declaring_type=declaring_type,
            generic_parameters=read_generic_parameters(node),
            markers=markers_from(node.decorator_list),
        )
        # Implicit class-body names
        self.type_def.scope_names.update(('__module__', '__qualname__'))
        self.initializer: List[ast.stmt] = []

    def read(self) -> TypeDefinition:
        type_def = self.type_def
        if is_enum_class(type_def.node, self.enum_names):
            type_def.is_enum = True
            self.enum_names.add(type_def.name)
            return type_def

        for index, stmt in enumerate(type_def.node.body):
            if _is_docstring(stmt, index) or _is_noop(stmt):
                continue
            if isinstance(stmt, ast.ClassDef):
                type_def.nested_types.append(read_type(stmt, type_def, self.enum_names))
                type_def.scope_names.add(stmt.name)
            elif isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
                type_def.add_method(read_method(stmt))
                _read_instance_property(type_def, stmt)
                type_def.scope_names.add(stmt.name)
            elif isinstance(stmt, (ast.Import, ast.ImportFrom)):
                type_def.scope_names.update(bound_names(stmt).declarations)
            else:
                self._read_state_statement(stmt)

        self._drop_shadowed_backing_fields()
        type_def.initializer = self.initializer or None
        return type_def

    def _stored_names(self) -> Set[str]:
        return {f.name for f in self.type_def.fields if not f.is_generated}

    def _read_state_statement(self, stmt: ast.stmt) -> None:
        type_def = self.type_def
        name, annotation, value = _single_target(stmt)

        if name is not None and value is None:
            # Annotation-only: a class-level declaration only when ClassVar
            if is_classvar(annotation) and not is_dunder(name):
                self._add_field(name, annotation, annotation_markers(annotation))
                type_def.scope_names.add(name)
            return

        kind = declaration_kind(value) if name is not None else None
        if kind == PROPERTY_DECLARATION:
            self._add_property(name, annotation)
        elif kind == EVENT_DECLARATION:
            self._add_event(name, annotation)
        else:
            names = bound_names(stmt)
            stored = [n for n in names.stores if not is_dunder(n)]
            if not stored and names.stores and not names.declarations:
                # Only dunder names (__slots__, __hash__ = None, ...): class plumbing, not state
                return
            markers = annotation_markers(annotation)
            for stored_name in stored:
                self._add_field(stored_name, annotation if stored_name == name else None,
                                markers if stored_name == name else [])
            type_def.scope_names.update(names.stores + names.declarations)
        self.initializer.append(stmt)

    def _add_field(self, name: str, annotation: Optional[ast.expr], markers: List[Marker],
                   generated: bool = False, runtime_name: Optional[str] = None) -> None:
        existing = self.type_def.find_field(name)
        if existing is not None and existing.is_generated == generated:
            if existing.annotation is None:
                existing.annotation = annotation
            existing.markers.extend(m for m in markers if m not in existing.markers)
            return
        self.type_def.fields.append(FieldDefinition(
            name=name,
            runtime_name=runtime_name or mangle(self.type_def.name, name),
            annotation=annotation,
            markers=list(markers),
            is_generated=generated,
            declaring_type=self.type_def,
        ))

    def _add_property(self, name: str, annotation: Optional[ast.expr]) -> None:
        type_def = self.type_def
        type_def.properties.append(PropertyDefinition(
            name=name,
            markers=annotation_markers(annotation),
            getter_is_static=True,
            setter_is_static=True,
            declaring_type=type_def,
        ))
        backing = backing_field_name(mangle(type_def.name, name))
        self._add_field(backing, annotation, [], generated=True, runtime_name=backing)
        type_def.scope_names.add(name)

    def _add_event(self, name: str, annotation: Optional[ast.expr]) -> None:
        type_def = self.type_def
        type_def.events.append(EventDefinition(
            name=name,
            markers=annotation_markers(annotation),
            declaring_type=type_def,
        ))
        self._add_field(name, annotation, [], generated=True)
        type_def.scope_names.add(name)

    def _drop_shadowed_backing_fields(self) -> None:
        """A user field with a backing field's name is the storage itself; keep only the user's."""
        user_names = self._stored_names()
        self.type_def.fields = [
            f for f in self.type_def.fields
            if not (f.is_generated and f.name in user_names)
        ]


def read_type(node: ast.ClassDef, declaring_type: Optional[TypeDefinition] = None,
              enum_names: Optional[Set[str]] = None) -> TypeDefinition:
    """Read a class statement (and, recursively, its nested classes).

    enum_names collects the enum classes seen so far, so that subclasses of
    an enum declared earlier in the module are recognized too.
    """
    return _TypeReader(node, declaring_type, enum_names if enum_names is not None else set()).read()
