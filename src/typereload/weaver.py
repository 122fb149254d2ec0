"""
Weaver: the per-module transformation entry point.

Reads a parsed module, analyzes every class (nested ones included), and for
each eligible class synthesizes and emits its units and registration. The
input tree is never modified; all work happens on a copy, and a failure
anywhere aborts the whole module with no partial result.

Usage:
    result = weave_module(ast.parse(source), 'app.settings')
    code = compile(result.tree, 'app/settings.py', 'exec')

    # or, in one step
    code = compile_source(source, 'app.settings', 'app/settings.py')
"""

import ast
import copy
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from typereload.analyzer import analyze
from typereload.config import ReloadConfig, get_reload_config
from typereload.copier import INIT_COPY_NAME, copy_initializer
from typereload.errors import AlreadyTransformedError
from typereload.instrumentation import instrument_type
from typereload.model import ModuleDefinition, TypeDefinition
from typereload.reader import read_module
from typereload.synthesizer import LOAD_UNIT_NAME, UNLOAD_UNIT_NAME, synthesize_load_unit, synthesize_unload_unit

logger = logging.getLogger(__name__)

UNIT_NAMES = frozenset({INIT_COPY_NAME, UNLOAD_UNIT_NAME, LOAD_UNIT_NAME})


@dataclass
class WeaveResult:
    """A woven module tree and the classes that were hooked into reloads."""
    tree: ast.Module
    hooked_types: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.hooked_types)


def _imports_runtime(tree: ast.Module, config: ReloadConfig) -> bool:
    for stmt in tree.body:
        if isinstance(stmt, ast.Import) and any(alias.asname == config.runtime_alias for alias in stmt.names):
            return True
    return False


def _has_generated_units(type_def: TypeDefinition) -> bool:
    return any(method.is_generated and method.name in UNIT_NAMES for method in type_def.methods)


def _check_not_transformed(module: ModuleDefinition, config: ReloadConfig) -> None:
    if _imports_runtime(module.tree, config):
        raise AlreadyTransformedError(f"Module {module.name} already imports {config.runtime_module}")
    for type_def in module.all_types():
        if _has_generated_units(type_def):
            raise AlreadyTransformedError(f"{module.name}.{type_def.lexical_path} already has generated units")


def _runtime_import_index(tree: ast.Module) -> int:
    """Index after the module docstring and any `from __future__` imports."""
    index = 0
    body = tree.body
    if body and isinstance(body[0], ast.Expr) and isinstance(body[0].value, ast.Constant) \
            and isinstance(body[0].value.value, str):
        index = 1
    while index < len(body) and isinstance(body[index], ast.ImportFrom) and body[index].module == '__future__':
        index += 1
    return index


def add_runtime_import(tree: ast.Module, config: ReloadConfig) -> None:
    """Bind the runtime module under its alias before any class statement runs."""
    statement = ast.Import(names=[ast.alias(name=config.runtime_module, asname=config.runtime_alias)])
    tree.body.insert(_runtime_import_index(tree), statement)


def weave_type(type_def: TypeDefinition, config: ReloadConfig) -> bool:
    """Analyze, synthesize and instrument one class. Returns whether it was hooked."""
    analysis = analyze(type_def)
    if not analysis.eligible:
        return False

    copied = copy_initializer(type_def)
    unload = synthesize_unload_unit(type_def, analysis.unload_callbacks)
    load = synthesize_load_unit(type_def, analysis.static_fields, copied)
    instrument_type(type_def, copied, unload, load, config)
    return True


def weave_module(tree: ast.Module, module_name: str, config: Optional[ReloadConfig] = None) -> WeaveResult:
    """Transform a parsed module so its classes reset their static state on reload.

    Args:
        tree: Parsed module. Left untouched.
        module_name: Dotted module name; woven classes register under it.
        config: Settings to weave with (default: the process-wide config).

    Returns:
        WeaveResult with the transformed copy and the hooked classes.

    Raises:
        AlreadyTransformedError: The module was woven before.
        GenericContextError: A generic class's units could not be qualified.
    """
    config = config or get_reload_config()
    working = copy.deepcopy(tree)
    module = read_module(working, module_name)
    _check_not_transformed(module, config)

    result = WeaveResult(tree=working)
    for type_def in list(module.all_types()):
        if weave_type(type_def, config):
            result.hooked_types.append(type_def.lexical_path)

    if result.changed:
        add_runtime_import(working, config)
        ast.fix_missing_locations(working)
        logger.info(f"Wove {module_name}: hooked {len(result.hooked_types)} class(es): {', '.join(result.hooked_types)}")
    else:
        logger.debug(f"Wove {module_name}: nothing to hook")
    return result


def transform_source(source: Union[str, bytes], module_name: str, filename: str = '<unknown>',
                     config: Optional[ReloadConfig] = None) -> WeaveResult:
    """Parse source and weave it."""
    return weave_module(ast.parse(source, filename=filename), module_name, config)


def compile_source(source: Union[str, bytes], module_name: str, filename: str = '<unknown>',
                   config: Optional[ReloadConfig] = None):
    """Parse, weave and compile source into a module code object."""
    result = transform_source(source, module_name, filename, config)
    return compile(result.tree, filename, 'exec', dont_inherit=True)
