"""
Tests for the import hook.
"""

import sys
import textwrap

import pytest

from typereload import install_import_hook, reload_dirty_types, uninstall_import_hook
from typereload.importer import WeavingFinder
from typereload.registry import registry_for


SETTINGS_SOURCE = """
    class Settings:
        retries = 3
        endpoints = {}
"""


@pytest.fixture
def hot_package(tmp_path, monkeypatch):
    """A package `hotpkg` with a `settings` module, importable from tmp_path."""
    package = tmp_path / 'hotpkg'
    package.mkdir()
    (package / '__init__.py').write_text('')
    (package / 'settings.py').write_text(textwrap.dedent(SETTINGS_SOURCE))
    (tmp_path / 'coldpkg.py').write_text(textwrap.dedent(SETTINGS_SOURCE))
    monkeypatch.syspath_prepend(str(tmp_path))

    yield package

    for name in ('hotpkg', 'hotpkg.settings', 'coldpkg'):
        sys.modules.pop(name, None)


class TestImportHook:
    """Test weaving at import time."""

    def test_matching_module_is_woven(self, hot_package):
        """Modules under an installed prefix are woven and registered."""
        install_import_hook('hotpkg')
        import hotpkg.settings

        assert hasattr(hotpkg.settings, '__typereload__')
        hotpkg.settings.Settings.retries = 0
        hotpkg.settings.Settings.endpoints['a'] = 'b'
        reload_dirty_types()
        assert hotpkg.settings.Settings.retries == 3
        assert hotpkg.settings.Settings.endpoints == {}
        assert registry_for('hotpkg.settings').actions('load')

    def test_other_modules_untouched(self, hot_package):
        """Modules outside the prefixes load as written."""
        install_import_hook('hotpkg')
        import coldpkg

        assert not hasattr(coldpkg, '__typereload__')

    def test_uninstall(self, hot_package):
        """After uninstalling, imports are no longer woven."""
        finder = install_import_hook('hotpkg')
        uninstall_import_hook()
        assert finder not in sys.meta_path

        import hotpkg.settings
        assert not hasattr(hotpkg.settings, '__typereload__')

    def test_reinstall_replaces_hook(self):
        """Only one hook is active at a time."""
        first = install_import_hook('a')
        second = install_import_hook('b')
        assert first not in sys.meta_path
        assert sys.meta_path[0] is second


class TestWeavingFinder:
    """Test prefix matching."""

    def test_prefix_matching(self):
        """A prefix matches itself and its submodules only."""
        finder = WeavingFinder(['app'])
        assert finder.matches('app')
        assert finder.matches('app.settings')
        assert not finder.matches('application')

    def test_framework_never_woven(self):
        """The framework's own modules are excluded."""
        finder = WeavingFinder(['typereload'])
        assert not finder.matches('typereload.runtime')
