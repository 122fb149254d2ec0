"""
Tests for generic classes.

Tests cover:
- Generic context rewriting and its errors
- Per-instantiation storage and reload
- Reified instantiation caching and utilities
- Concurrent creation of instantiations
"""

import ast
import sys
import textwrap
import threading
from collections import Counter
from typing import List, TypeVar

import pytest

from typereload import GenericContextError, reload_dirty_types, transform_source, weave_module
from typereload.emitter import render_type
from typereload.generic_context import qualify_type, qualify_unit
from typereload.model import GenericInstanceType, GenericParameter, MethodDefinition, MethodKind
from typereload.reified import _is_open, clear_cache, get_reified_args, get_reified_origin, is_reified, reified_instantiations
from typereload.registry import LOAD, UNLOAD, registry_for


BOX_SOURCE = """
    from typing import Generic, TypeVar

    from typereload import on_type_unload

    T = TypeVar('T')
    CREATED = []
    FLUSHED = []


    class Box(Generic[T]):
        items = []
        CREATED.append(__qualname__)

        @on_type_unload
        @classmethod
        def flush(cls):
            FLUSHED.append(cls.__qualname__)
"""


class TestGenericContext:
    """Test qualification of references into generic classes."""

    def test_identity_instantiation(self, read):
        """A generic class is referenced through itself applied to its own parameters."""
        module = read("""
            class Table(Generic[K, V]):
                rows = []
        """)
        table = module.types[0]
        ref = qualify_type(table)
        assert isinstance(ref, GenericInstanceType)
        assert ref.element_type is table
        assert ref.is_identity

    def test_non_generic_passes_through(self, read):
        """Plain classes need no qualification."""
        module = read("""
            class Plain:
                rows = []
        """)
        plain = module.types[0]
        assert qualify_type(plain) is plain

    def test_unresolved_parameter(self, read):
        """A parameter that is not a plain name cannot be qualified."""
        module = read("""
            class Odd(Generic[make_var()]):
                rows = []
        """)
        with pytest.raises(GenericContextError):
            qualify_type(module.types[0])

    def test_unit_becomes_classmethod(self, read):
        """Units of generic classes bind to the class they are called on."""
        module = read("""
            class Table(Generic[K]):
                rows = []
        """)
        unit = module.types[0].add_method(MethodDefinition(name='__typereload_load', is_generated=True))
        qualify_unit(unit)
        assert unit.kind is MethodKind.CLASS
        assert unit.parameters == ['cls']
        assert ast.unparse(render_type(unit.owner, unit)) == 'cls'

    def test_raw_open_reference_rejected(self, read):
        """Rendering a generic class without its parameters is an error."""
        module = read("""
            class Table(Generic[K]):
                rows = []
        """)
        table = module.types[0]
        unit = table.add_method(MethodDefinition(name='__typereload_load', kind=MethodKind.CLASS))
        with pytest.raises(GenericContextError):
            render_type(table, unit)

    def test_non_identity_instantiation_rejected(self, read):
        """Only the class's own parameters can be rendered."""
        module = read("""
            class Table(Generic[K, V]):
                rows = []
        """)
        table = module.types[0]
        unit = table.add_method(MethodDefinition(name='__typereload_load', kind=MethodKind.CLASS))
        swapped = GenericInstanceType(table, tuple(reversed(table.generic_parameters)))
        foreign = GenericInstanceType(table, (GenericParameter('int'), GenericParameter('str')))
        for ref in (swapped, foreign):
            with pytest.raises(GenericContextError):
                render_type(ref, unit)

    def test_weave_fails_whole_module(self):
        """One unqualifiable class aborts the module; the input is untouched."""
        tree = ast.parse(textwrap.dedent("""
            class Fine:
                rows = []

            class Odd(Generic[make_var()]):
                rows = []
        """))
        before = ast.dump(tree)
        with pytest.raises(GenericContextError):
            weave_module(tree, 'odd')
        assert ast.dump(tree) == before

    def test_generic_units_use_cls(self):
        """Generated code for a generic class never names the class directly."""
        text = ast.unparse(transform_source(textwrap.dedent(BOX_SOURCE), 'box').tree)
        assert '@classmethod\n    @__typereload__.generated\n    def __typereload_load(cls) -> None:' in text
        assert "__typereload__.store_static(cls, 'items', [])" in text
        assert 'cls.flush()' in text
        assert 'Box.items' not in text


class TestInstantiations:
    """Test per-instantiation storage of woven generic classes."""

    def test_instantiations_have_own_storage(self, woven):
        """Box[int] and Box[str] each get their own class attributes."""
        module = woven(BOX_SOURCE, 'box_module')
        box = module.Box
        assert box[int] is box[int]
        assert box[int].items is not box[str].items
        assert box[int].items is not box.items
        box[int].items.append(1)
        assert box[str].items == []

    def test_each_instantiation_initialized_once(self, woven):
        """The class body runs once for the origin and once per instantiation."""
        module = woven(BOX_SOURCE, 'box_module')
        box = module.Box
        box[int]
        box[int]
        box[str]
        assert module.CREATED == ['Box', 'Box[int]', 'Box[str]']

    def test_reload_resets_every_instantiation(self, woven):
        """A reload runs callbacks and resets storage per instantiation."""
        module = woven(BOX_SOURCE, 'box_module')
        box = module.Box
        box[int].items.append(1)
        box.items.append(0)

        reload_dirty_types()
        assert box[int].items == []
        assert box.items == []
        assert sorted(module.FLUSHED) == ['Box', 'Box[int]']

    def test_type_variables_keep_typing_behavior(self, woven):
        """Subscripting with type variables still builds a typing alias."""
        module = woven(BOX_SOURCE, 'box_module')
        box = module.Box
        alias = box[module.T]
        assert not isinstance(alias, type)

        class Sub(alias):
            pass

        assert issubclass(Sub, box)

    def test_reified_utilities(self, woven):
        """Instantiations report their origin and arguments."""
        module = woven(BOX_SOURCE, 'box_module')
        box = module.Box
        int_box = box[int]
        assert is_reified(int_box)
        assert not is_reified(box)
        assert get_reified_args(int_box) == (int,)
        assert get_reified_origin(int_box) is box
        assert get_reified_origin(box) is box
        assert int_box.__qualname__ == 'Box[int]'
        assert isinstance(int_box(), box)
        assert reified_instantiations(box) == {(int,): int_box}

    def test_rebuilt_origin_is_the_one_reset(self, woven):
        """A decorator that rebuilds the class leaves one registration, run against the new class."""
        module = woven("""
            from typing import ClassVar, Generic, TypeVar

            T = TypeVar('T')

            def rebuild(cls):
                namespace = {k: v for k, v in cls.__dict__.items() if k not in ('__dict__', '__weakref__')}
                return type(cls)(cls.__name__, cls.__bases__, namespace)

            @rebuild
            class Box(Generic[T]):
                count: ClassVar[int] = 1
        """, 'rebuilt_box_module')
        box = module.Box
        registry = registry_for('rebuilt_box_module')
        assert len(registry.actions(LOAD)) == 1

        box.count = 5
        assert reload_dirty_types() is True
        assert box.count == 1
        assert get_reified_origin(box[int]) is box
        assert len(registry.actions(LOAD)) == 2

    def test_clear_cache(self, woven):
        """Clearing the cache makes the next subscription build a fresh class."""
        module = woven(BOX_SOURCE, 'box_module')
        first = module.Box[int]
        clear_cache()
        assert module.Box[int] is not first

    @pytest.mark.skipif(sys.version_info < (3, 12), reason="PEP 695 syntax")
    def test_type_parameter_syntax(self, woven):
        """class Box[T] is generic too."""
        module = woven("""
            class Box[T]:
                items = []
        """, 'pep695_module')
        box = module.Box
        assert box[int].items is not box.items
        box[int].items.append(1)
        reload_dirty_types()
        assert box[int].items == []


class TestConcurrentInstantiation:
    """Test racing threads creating instantiations."""

    def test_distinct_instantiations_all_registered(self, woven):
        """N threads creating N distinct instantiations register N unit pairs."""
        module = woven(BOX_SOURCE, 'box_module')
        box = module.Box
        registry = registry_for('box_module')
        thread_count = 8
        arg_types = [type(f'Arg{i}', (), {}) for i in range(thread_count)]
        barrier = threading.Barrier(thread_count)
        created = {}

        def worker(index):
            barrier.wait()
            created[index] = box[arg_types[index]]

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(thread_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        # The origin registers too
        assert len(registry.actions(LOAD)) == thread_count + 1
        assert len(registry.actions(UNLOAD)) == thread_count + 1

        module.CREATED.clear()
        reload_dirty_types()
        counts = Counter(module.CREATED)
        assert len(counts) == thread_count + 1
        assert set(counts.values()) == {1}

    def test_same_instantiation_created_once(self, woven):
        """Threads racing for the same instantiation agree on one initialized class."""
        module = woven(BOX_SOURCE, 'box_module')
        box = module.Box
        thread_count = 8
        barrier = threading.Barrier(thread_count)
        created = []

        def worker():
            barrier.wait()
            created.append(box[int])

        threads = [threading.Thread(target=worker) for _ in range(thread_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len({id(t) for t in created}) == 1
        assert module.CREATED.count('Box[int]') == 1
        assert len(registry_for('box_module').actions(LOAD)) == 2


def test_open_arguments_detected():
    """Arguments still containing type variables are open; concrete ones are not."""
    T = TypeVar('T')
    assert _is_open(T)
    assert _is_open(List[T])
    assert not _is_open(int)
    assert not _is_open(List[int])
