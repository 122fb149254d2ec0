"""
Static state reset for hot-reloaded Python code.

When a host swaps in new code without restarting the process, class-level
state (caches, counters, registries, events) survives and goes stale.
typereload rewrites modules at import time so every class holding such state
can be reset on demand: its unload callbacks run, its class attributes go back
to zero, and its class body's state statements run again.

Key Features:
- Import-time weaving of module syntax trees (no source edits)
- Per-class opt-out (@never_reload) and per-attribute opt-out
  (Annotated[T, never_reload])
- Ordered unload callbacks (@on_type_unload(order=N))
- Per-instantiation state for generic classes (Box[int] and Box[str] are reset
  separately)
- Failure containment: a failed reload is reported, never raised

Quick Start:
    >>> from typereload import install_import_hook, reload_dirty_types
    >>> install_import_hook('app')
    >>> import app.settings
    >>> ...                      # host swaps code
    >>> reload_dirty_types()
    True

Modules:
    - reader / inventory / callbacks / analyzer: what a class needs reset
    - copier / synthesizer / generic_context / emitter / instrumentation: the generated units
    - weaver / importer: per-module transformation and the import hook
    - runtime / reified / registry: what woven code calls at run time
    - orchestrator: reload cycles
    - config: framework configuration
"""

# Declarations
from typereload.markers import (
    never_reload,
    on_type_unload,
    static_property,
    static_event,
    StaticEvent,
    assign_static,
)

# Weaving
from typereload.weaver import (
    WeaveResult,
    weave_module,
    transform_source,
    compile_source,
)
from typereload.importer import install_import_hook, uninstall_import_hook

# Reloading
from typereload.orchestrator import (
    ReloadOrchestrator,
    ReloadState,
    reload_dirty_types,
    set_diagnostic_sink,
    get_orchestrator,
)
from typereload.registry import DispatchRegistry, registry_for, all_registries

# Configuration
from typereload.config import (
    ReloadConfig,
    set_reload_config,
    get_reload_config,
    update_reload_config,
    reset_reload_config,
)

# Errors
from typereload.errors import WeaveError, GenericContextError, AlreadyTransformedError

__all__ = [
    # Declarations
    'never_reload',
    'on_type_unload',
    'static_property',
    'static_event',
    'StaticEvent',
    'assign_static',
    # Weaving
    'WeaveResult',
    'weave_module',
    'transform_source',
    'compile_source',
    'install_import_hook',
    'uninstall_import_hook',
    # Reloading
    'ReloadOrchestrator',
    'ReloadState',
    'reload_dirty_types',
    'set_diagnostic_sink',
    'get_orchestrator',
    'DispatchRegistry',
    'registry_for',
    'all_registries',
    # Configuration
    'ReloadConfig',
    'set_reload_config',
    'get_reload_config',
    'update_reload_config',
    'reset_reload_config',
    # Errors
    'WeaveError',
    'GenericContextError',
    'AlreadyTransformedError',
]

__version__ = "0.1.0"
