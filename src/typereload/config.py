"""
Framework configuration for typereload.

Holds the pluggable knobs shared by the weaver, the generated code and the
reload orchestrator. Stored as module-level state so hosts configure it once at
startup, the same way a base config type is set once for the whole process.
"""

from dataclasses import dataclass, field, replace
from typing import Dict


# Zero values per annotation name. Everything not listed resets to None.
DEFAULT_ZERO_VALUES: Dict[str, object] = {
    'int': 0,
    'float': 0.0,
    'complex': 0j,
    'bool': False,
}


@dataclass(frozen=True)
class ReloadConfig:
    """Process-wide typereload settings.

    Attributes:
        runtime_module: Module the generated code imports at the top of a woven module.
        runtime_alias: Name the runtime module is bound to in woven modules.
        zero_values: Annotation name -> value a reset item holds before its initializer reruns.
        collect_garbage: Whether a reload cycle runs a full collection between unload and load.
    """
    runtime_module: str = 'typereload.runtime'
    runtime_alias: str = '__typereload__'
    zero_values: Dict[str, object] = field(default_factory=lambda: dict(DEFAULT_ZERO_VALUES))
    collect_garbage: bool = True


_reload_config: ReloadConfig = ReloadConfig()


def set_reload_config(config: ReloadConfig) -> None:
    """Replace the process-wide configuration."""
    global _reload_config
    _reload_config = config


def get_reload_config() -> ReloadConfig:
    """Get the process-wide configuration."""
    return _reload_config


def update_reload_config(**changes) -> ReloadConfig:
    """Replace selected settings, keeping the rest."""
    set_reload_config(replace(_reload_config, **changes))
    return _reload_config


def reset_reload_config() -> None:
    """Restore the default configuration (for testing)."""
    set_reload_config(ReloadConfig())
