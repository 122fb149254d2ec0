"""
Type instrumentation: wires a class's units into the module's dispatch registry.

The units are appended to the end of the class body, followed by

    __typereload_registration = __typereload__.TypeInitializer(
        __module__, unload=__typereload_unload, load=__typereload_load, generic=False)

TypeInitializer.__set_name__ runs when the class object is created, which
registers the units exactly once per class. For generic classes it also makes
every concrete instantiation (Box[int], ...) a class of its own that registers
its units once, on first use.

Appending keeps every statement already in the class body where it was; the
registration runs last, after the original body has initialized the class.
"""

import ast
import logging
from typing import List, Optional

from typereload.config import ReloadConfig, get_reload_config
from typereload.emitter import emit_unit
from typereload.generic_context import qualify_unit
from typereload.model import MethodDefinition, TypeDefinition

logger = logging.getLogger(__name__)

REGISTRATION_NAME = '__typereload_registration'


def registration_statement(
    type_def: TypeDefinition,
    unload: Optional[MethodDefinition],
    load: Optional[MethodDefinition],
    config: ReloadConfig,
) -> ast.stmt:
    keywords = []
    for keyword, unit in (('unload', unload), ('load', load)):
        if unit is not None:
            keywords.append(ast.keyword(arg=keyword, value=ast.Name(id=unit.name, ctx=ast.Load())))
    keywords.append(ast.keyword(arg='generic', value=ast.Constant(value=type_def.has_generic_parameters)))

    call = ast.Call(
        func=ast.Attribute(value=ast.Name(id=config.runtime_alias, ctx=ast.Load()), attr='TypeInitializer', ctx=ast.Load()),
        args=[ast.Name(id='__module__', ctx=ast.Load())],
        keywords=keywords,
    )
    return ast.Assign(targets=[ast.Name(id=REGISTRATION_NAME, ctx=ast.Store())], value=call, type_comment=None)


def instrument_type(
    type_def: TypeDefinition,
    copied_initializer: Optional[MethodDefinition],
    unload: Optional[MethodDefinition],
    load: Optional[MethodDefinition],
    config: Optional[ReloadConfig] = None,
) -> None:
    """Emit the units of type_def and register them from its class body.

    Every unit is rendered before the class body is touched, so a
    GenericContextError leaves the class as it was.
    """
    config = config or get_reload_config()
    units: List[MethodDefinition] = [u for u in (copied_initializer, unload, load) if u is not None]
    emitted = [emit_unit(qualify_unit(unit), config) for unit in units]

    type_def.node.body.extend(emitted)
    type_def.node.body.append(registration_statement(type_def, unload, load, config))
    logger.debug(f"Instrumented {type_def.lexical_path} with {', '.join(u.name for u in units)}")
