"""
Emitter: renders synthesized units as function definitions for a class body.

Units built from instructions (load/unload) render one statement per
instruction. The copied initializer renders its cloned class-body statements,
rewritten to run as a function nested in the class:

- Loads of class-scope names read the owning class (`Counter.total`, `cls.total`)
- `x = value` becomes `__typereload__.store_static(Counter, 'x', value)`, so
  values defining __set_name__ (static_property, descriptors) are bound the way
  class creation binds them
- Other stores target the owning class; `(x := value)` becomes a store_static
  call, which evaluates to value
- Stores to opted-out names are dropped, or sent to a throwaway local when
  they are part of a larger target, so that storage keeps its value
- Nested scopes (function bodies, lambdas, comprehension bodies) are left
  alone, as they never saw the class scope in the first place

Member references are rendered through their qualified declaring type: a plain
class renders as its dotted path from the module, the identity instantiation
of a generic class renders as `cls`. Anything else cannot be expressed and
raises GenericContextError.
"""

import ast
from typing import Callable, List, Optional, Set

from typereload.config import ReloadConfig, get_reload_config
from typereload.errors import GenericContextError
from typereload.inventory import opted_out_names
from typereload.model import (
    CallMethod,
    GenericInstanceType,
    Instruction,
    MethodDefinition,
    MethodKind,
    ResetField,
    TypeDefinition,
    TypeReference,
    mangle,
)

DISCARD_NAME = '_typereload_discard'
CLASS_PARAMETER = 'cls'


# =============================================================================
# TYPE AND MEMBER REFERENCES
# =============================================================================

def _dotted(path: str) -> ast.expr:
    parts = path.split('.')
    expr: ast.expr = ast.Name(id=parts[0], ctx=ast.Load())
    for part in parts[1:]:
        expr = ast.Attribute(value=expr, attr=part, ctx=ast.Load())
    return expr


def render_type(ref: TypeReference, unit: MethodDefinition) -> ast.expr:
    """Expression evaluating to the class ref names, from inside unit.

    Raises:
        GenericContextError: ref is an open generic class, or an instantiation
            other than the unit's own class applied to its own parameters
    """
    if isinstance(ref, GenericInstanceType):
        if not ref.is_identity:
            raise GenericContextError(
                f"{unit.name} references a non-identity instantiation of {ref.element_type.lexical_path}"
            )
        if ref.element_type is not unit.declaring_type or unit.kind is not MethodKind.CLASS:
            raise GenericContextError(
                f"{unit.name} of {unit.declaring_type.lexical_path} cannot reach "
                f"the instantiation of {ref.element_type.lexical_path}"
            )
        return ast.Name(id=CLASS_PARAMETER, ctx=ast.Load())
    if ref.has_generic_parameters:
        raise GenericContextError(
            f"{unit.name} references a member of open generic {ref.lexical_path} without its type parameters"
        )
    return _dotted(ref.lexical_path)


def render_instruction(instruction: Instruction, unit: MethodDefinition) -> ast.stmt:
    if isinstance(instruction, ResetField):
        target = ast.Attribute(
            value=render_type(instruction.target.declaring_type, unit),
            attr=instruction.target.name,
            ctx=ast.Store(),
        )
        return ast.Assign(targets=[target], value=ast.Constant(value=instruction.zero), type_comment=None)
    if isinstance(instruction, CallMethod):
        func = ast.Attribute(
            value=render_type(instruction.method.declaring_type, unit),
            attr=instruction.method.name,
            ctx=ast.Load(),
        )
        return ast.Expr(value=ast.Call(func=func, args=[], keywords=[]))
    raise TypeError(f"Unknown instruction: {instruction!r}")


# =============================================================================
# COPIED INITIALIZER
# =============================================================================

class ClassScopeQualifier(ast.NodeTransformer):
    """Rewrite cloned class-body statements to run inside a function of that class."""

    def __init__(self, type_def: TypeDefinition, owner: Callable[[], ast.expr],
                 retained: Set[str], runtime_alias: str):
        self.type_def = type_def
        self.owner = owner
        self.scope_names = type_def.scope_names
        self.retained = retained
        self.runtime_alias = runtime_alias

    def _in_scope(self, name: str) -> bool:
        return name in self.scope_names

    def _store_static_call(self, name: str, value: ast.expr) -> ast.Call:
        return ast.Call(
            func=ast.Attribute(value=ast.Name(id=self.runtime_alias, ctx=ast.Load()), attr='store_static', ctx=ast.Load()),
            args=[self.owner(), ast.Constant(value=mangle(self.type_def.name, name)), value],
            keywords=[],
        )

    def _store_static(self, name: str, value: ast.expr, source: ast.AST) -> ast.stmt:
        return ast.copy_location(ast.Expr(value=self._store_static_call(name, value)), source)

    def _rebind(self, names: List[str], source: ast.stmt) -> List[ast.stmt]:
        """`Owner.name = name` for each class-scope name a nested statement bound as a local."""
        statements = []
        for name in names:
            if not self._in_scope(name) or name in self.retained:
                continue
            target = ast.Attribute(value=self.owner(), attr=name, ctx=ast.Store())
            assign = ast.Assign(targets=[target], value=ast.Name(id=name, ctx=ast.Load()), type_comment=None)
            statements.append(ast.copy_location(assign, source))
        return statements

    # -- names -----------------------------------------------------------------

    def visit_Name(self, node: ast.Name) -> ast.expr:
        if not self._in_scope(node.id):
            return node
        if isinstance(node.ctx, ast.Store) and node.id in self.retained:
            return ast.copy_location(ast.Name(id=DISCARD_NAME, ctx=ast.Store()), node)
        return ast.copy_location(ast.Attribute(value=self.owner(), attr=node.id, ctx=node.ctx), node)

    def visit_NamedExpr(self, node: ast.NamedExpr) -> ast.expr:
        node.value = self.visit(node.value)
        name = node.target.id
        if not self._in_scope(name):
            return node
        if name in self.retained:
            node.target = ast.copy_location(ast.Name(id=DISCARD_NAME, ctx=ast.Store()), node.target)
            return node
        # store_static returns the value, so the expression still evaluates to it
        return ast.copy_location(self._store_static_call(name, node.value), node)

    # -- statements --------------------------------------------------------------

    def visit_Assign(self, node: ast.Assign):
        node.value = self.visit(node.value)
        if len(node.targets) == 1 and isinstance(node.targets[0], ast.Name) and self._in_scope(node.targets[0].id):
            name = node.targets[0].id
            if name in self.retained:
                return None
            return self._store_static(name, node.value, node)
        node.targets = [self.visit(target) for target in node.targets]
        return node

    def visit_AnnAssign(self, node: ast.AnnAssign):
        if node.value is None:
            return None
        value = self.visit(node.value)
        if isinstance(node.target, ast.Name) and self._in_scope(node.target.id):
            if node.target.id in self.retained:
                return None
            return self._store_static(node.target.id, value, node)
        assign = ast.Assign(targets=[self.visit(node.target)], value=value, type_comment=None)
        return ast.copy_location(assign, node)

    def visit_AugAssign(self, node: ast.AugAssign):
        if isinstance(node.target, ast.Name) and node.target.id in self.retained:
            return None
        return self.generic_visit(node)

    def visit_Delete(self, node: ast.Delete):
        node.targets = [
            target for target in node.targets
            if not (isinstance(target, ast.Name) and target.id in self.retained)
        ]
        if not node.targets:
            return None
        return self.generic_visit(node)

    def visit_Import(self, node):
        names = [alias.asname or alias.name.split('.')[0] for alias in node.names if alias.name != '*']
        return [node] + self._rebind(names, node)

    visit_ImportFrom = visit_Import

    # -- nested scopes -------------------------------------------------------------

    def _visit_arguments(self, args: ast.arguments) -> None:
        args.defaults = [self.visit(default) for default in args.defaults]
        args.kw_defaults = [self.visit(default) if default is not None else None for default in args.kw_defaults]

    def visit_FunctionDef(self, node):
        node.decorator_list = [self.visit(decorator) for decorator in node.decorator_list]
        self._visit_arguments(node.args)
        return [node] + self._rebind([node.name], node)

    visit_AsyncFunctionDef = visit_FunctionDef

    def visit_ClassDef(self, node: ast.ClassDef):
        node.decorator_list = [self.visit(decorator) for decorator in node.decorator_list]
        node.bases = [self.visit(base) for base in node.bases]
        for keyword in node.keywords:
            keyword.value = self.visit(keyword.value)
        return [node] + self._rebind([node.name], node)

    def visit_Lambda(self, node: ast.Lambda) -> ast.expr:
        self._visit_arguments(node.args)
        return node

    def _visit_comprehension(self, node):
        # Only the first iterable is evaluated in the enclosing scope
        node.generators[0].iter = self.visit(node.generators[0].iter)
        return node

    visit_ListComp = _visit_comprehension
    visit_SetComp = _visit_comprehension
    visit_DictComp = _visit_comprehension
    visit_GeneratorExp = _visit_comprehension


def _fill_empty_blocks(statements: List[ast.stmt]) -> None:
    """Give every block emptied by dropped statements a `pass`."""
    for stmt in statements:
        for node in ast.walk(stmt):
            body = getattr(node, 'body', None)
            if isinstance(body, list) and not body:
                body.append(ast.copy_location(ast.Pass(), node))
            if isinstance(node, ast.Try) and not node.handlers and not node.finalbody:
                node.finalbody.append(ast.copy_location(ast.Pass(), node))


def qualify_source_body(unit: MethodDefinition, config: ReloadConfig) -> List[ast.stmt]:
    type_def = unit.declaring_type
    qualifier = ClassScopeQualifier(
        type_def,
        owner=lambda: render_type(unit.owner, unit),
        retained=opted_out_names(type_def),
        runtime_alias=config.runtime_alias,
    )
    statements: List[ast.stmt] = []
    for stmt in unit.source_body:
        result = qualifier.visit(stmt)
        if result is None:
            continue
        if isinstance(result, list):
            statements.extend(result)
        else:
            statements.append(result)
    _fill_empty_blocks(statements)
    return statements


# =============================================================================
# UNITS
# =============================================================================

def _function_def(name: str, parameters: List[str], body: List[ast.stmt],
                  decorators: List[ast.expr]) -> ast.FunctionDef:
    args = ast.arguments(
        posonlyargs=[],
        args=[ast.arg(arg=parameter, annotation=None, type_comment=None) for parameter in parameters],
        vararg=None,
        kwonlyargs=[],
        kw_defaults=[],
        kwarg=None,
        defaults=[],
    )
    node = ast.FunctionDef(
        name=name,
        args=args,
        body=body,
        decorator_list=decorators,
        returns=ast.Constant(value=None),
        type_comment=None,
    )
    if 'type_params' in ast.FunctionDef._fields:
        node.type_params = []
    return node


def emit_unit(unit: MethodDefinition, config: Optional[ReloadConfig] = None) -> ast.FunctionDef:
    """Render a qualified unit as a private function definition for its class body."""
    config = config or get_reload_config()
    if unit.source_body is not None:
        body = qualify_source_body(unit, config)
    else:
        body = [render_instruction(instruction, unit) for instruction in unit.body]

    binding = 'classmethod' if unit.kind is MethodKind.CLASS else 'staticmethod'
    decorators = [
        ast.Name(id=binding, ctx=ast.Load()),
        ast.Attribute(value=ast.Name(id=config.runtime_alias, ctx=ast.Load()), attr='generated', ctx=ast.Load()),
    ]
    return _function_def(unit.name, unit.parameters, body or [ast.Pass()], decorators)
