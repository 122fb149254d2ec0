"""
Import hook: weaves matching modules as they are imported.

Usage:
    from typereload import install_import_hook
    install_import_hook('app')      # app and every app.* module

    import app.settings             # classes registered for reloads
"""

import logging
import sys
from importlib.abc import MetaPathFinder
from importlib.machinery import PathFinder, SourceFileLoader
from typing import Iterable, Optional

from typereload.weaver import transform_source

logger = logging.getLogger(__name__)

# Never woven: the framework itself
EXCLUDED_PREFIXES = ('typereload',)


class WeavingLoader(SourceFileLoader):
    """Source loader that compiles the woven module instead of the source as written.

    Bytecode caching is bypassed: a cached .pyc may hold the unwoven module.
    """

    def get_code(self, fullname):
        path = self.get_filename(fullname)
        result = transform_source(self.get_data(path), fullname, filename=path)
        return compile(result.tree, path, 'exec', dont_inherit=True)


class WeavingFinder(MetaPathFinder):
    """MetaPathFinder handing modules under the given prefixes to WeavingLoader."""

    def __init__(self, prefixes: Iterable[str]):
        self.prefixes = tuple(prefixes)

    def matches(self, fullname: str) -> bool:
        if any(fullname == p or fullname.startswith(p + '.') for p in EXCLUDED_PREFIXES):
            return False
        return any(fullname == p or fullname.startswith(p + '.') for p in self.prefixes)

    def find_spec(self, fullname, path, target=None):
        if not self.matches(fullname):
            return None
        spec = PathFinder.find_spec(fullname, path)
        if spec is None or not isinstance(spec.loader, SourceFileLoader):
            return None
        spec.loader = WeavingLoader(spec.loader.name, spec.loader.path)
        logger.debug(f"Weaving {fullname} from {spec.origin}")
        return spec


_finder: Optional[WeavingFinder] = None


def install_import_hook(*prefixes: str) -> WeavingFinder:
    """Weave every module named by (or under) one of prefixes from now on.

    Installing again replaces the previous hook.
    """
    global _finder
    uninstall_import_hook()
    _finder = WeavingFinder(prefixes)
    sys.meta_path.insert(0, _finder)
    logger.info(f"Installed import hook for {', '.join(prefixes)}")
    return _finder


def uninstall_import_hook() -> None:
    """Remove the hook. Modules already imported stay woven."""
    global _finder
    if _finder is not None and _finder in sys.meta_path:
        sys.meta_path.remove(_finder)
    _finder = None
