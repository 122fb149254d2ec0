"""Pytest configuration and shared fixtures."""
import ast
import sys
import textwrap
import types

import pytest

from typereload import orchestrator as orchestrator_module
from typereload.config import reset_reload_config
from typereload.importer import uninstall_import_hook
from typereload.reader import read_module
from typereload.registry import clear_registries
from typereload.reified import clear_cache
from typereload.weaver import weave_module


@pytest.fixture(autouse=True)
def reset_typereload_state():
    """Start every test with no registries, default config and a logging diagnostic sink."""
    original_sink = orchestrator_module.get_orchestrator().diagnostic_sink
    clear_registries()
    clear_cache()
    reset_reload_config()

    yield

    clear_registries()
    clear_cache()
    reset_reload_config()
    uninstall_import_hook()
    orchestrator_module.get_orchestrator().diagnostic_sink = original_sink


def parse(source: str) -> ast.Module:
    return ast.parse(textwrap.dedent(source))


@pytest.fixture
def read():
    """Read dedented source into the metadata model."""
    def _read(source: str, module_name: str = 'sample'):
        return read_module(parse(source), module_name)
    return _read


@pytest.fixture
def woven():
    """Weave dedented source, execute it as a real module and return the module.

    Modules created through the fixture are removed from sys.modules afterwards.
    """
    created = []

    def _woven(source: str, module_name: str = 'woven_sample') -> types.ModuleType:
        result = weave_module(parse(source), module_name)
        module = types.ModuleType(module_name)
        sys.modules[module_name] = module
        created.append(module_name)
        exec(compile(result.tree, f'<{module_name}>', 'exec'), module.__dict__)
        return module

    yield _woven

    for module_name in created:
        sys.modules.pop(module_name, None)
