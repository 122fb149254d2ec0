"""
Tests for the dispatch registry.
"""

import threading

import pytest

from typereload.registry import (
    LOAD,
    UNLOAD,
    AtomicReference,
    DispatchRegistry,
    all_registries,
    clear_registries,
    combine,
    registry_for,
)


class TestAtomicReference:
    """Test compare-and-set semantics."""

    def test_swap_when_expected(self):
        """The swap succeeds against the current value."""
        current = ()
        reference = AtomicReference(current)
        assert reference.compare_and_set(current, ('a',))
        assert reference.get() == ('a',)

    def test_stale_expectation_fails(self):
        """The swap fails against a value that was already replaced."""
        stale = ()
        reference = AtomicReference(stale)
        reference.compare_and_set(stale, ('a',))
        assert not reference.compare_and_set(stale, ('b',))
        assert reference.get() == ('a',)


class TestDispatchRegistry:
    """Test registration and invocation."""

    def setup_method(self):
        self.registry = DispatchRegistry('sample')
        self.calls = []

    def test_invoke_in_registration_order(self):
        """Actions run in the order they were registered."""
        self.registry.register(LOAD, lambda: self.calls.append(1))
        self.registry.register(LOAD, lambda: self.calls.append(2))
        self.registry.invoke(LOAD)
        assert self.calls == [1, 2]

    def test_channels_are_separate(self):
        """Unload actions never run on load and vice versa."""
        self.registry.register_unload(lambda: self.calls.append('unload'))
        self.registry.register_load(lambda: self.calls.append('load'))
        self.registry.invoke_unload()
        assert self.calls == ['unload']

    def test_empty_channel_is_a_no_op(self):
        """Invoking a channel nobody registered on does nothing."""
        self.registry.invoke(UNLOAD)
        assert self.registry.actions(UNLOAD) == ()

    def test_exception_propagates_and_stops(self):
        """A failing action propagates; later actions do not run."""
        def fail():
            raise RuntimeError('boom')

        self.registry.register(LOAD, fail)
        self.registry.register(LOAD, lambda: self.calls.append('after'))
        with pytest.raises(RuntimeError, match='boom'):
            self.registry.invoke(LOAD)
        assert self.calls == []

    def test_unknown_channel(self):
        """Only the unload and load channels exist."""
        with pytest.raises(ValueError):
            self.registry.register('reload', lambda: None)
        with pytest.raises(ValueError):
            self.registry.invoke('reload')

    def test_invoke_uses_snapshot(self):
        """Actions registered while a channel runs wait for the next invocation."""
        def register_more():
            self.calls.append('first')
            self.registry.register(LOAD, lambda: self.calls.append('late'))

        self.registry.register(LOAD, register_more)
        self.registry.invoke(LOAD)
        assert self.calls == ['first']
        assert len(self.registry.actions(LOAD)) == 2

    def test_combine_keeps_original(self):
        """Combining builds a new composite."""
        original = ()
        combined = combine(original, print)
        assert original == ()
        assert combined == (print,)

    def test_concurrent_registration_loses_nothing(self):
        """Registrations racing from many threads are all kept."""
        thread_count = 16
        per_thread = 50
        barrier = threading.Barrier(thread_count)

        def worker():
            barrier.wait()
            for _ in range(per_thread):
                self.registry.register(UNLOAD, lambda: None)

        threads = [threading.Thread(target=worker) for _ in range(thread_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(self.registry.actions(UNLOAD)) == thread_count * per_thread


class TestModuleRegistries:
    """Test the per-module registry table."""

    def test_one_registry_per_module(self):
        """registry_for returns the same registry for the same module."""
        assert registry_for('a') is registry_for('a')
        assert registry_for('a') is not registry_for('b')

    def test_all_registries_in_creation_order(self):
        """Registries are listed in the order modules first used them."""
        registry_for('first')
        registry_for('second')
        assert [r.module_name for r in all_registries()] == ['first', 'second']

    def test_clear(self):
        """clear_registries forgets every module."""
        registry_for('a')
        clear_registries()
        assert all_registries() == []
