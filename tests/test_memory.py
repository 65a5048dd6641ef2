import logging
from dataclasses import dataclass

import pytest

from hxkit.allocators import DEFAULT_ALIGNMENT_MASK, AllocationError, MemoryManagerId
from hxkit.memory import (
    MemoryManager,
    MemoryManagerScope,
    free,
    is_scratchpad,
    malloc,
    malloc_ext,
    memory_manager_allocation_count,
    memory_manager_init,
    memory_manager_shutdown,
)
from hxkit.settings import settings


@dataclass
class _Scope:
    previous_allocation_count: int = 0
    previous_bytes_allocated: int = 0


@pytest.fixture
def global_manager():
    settings.reset()
    memory_manager_init()
    yield
    if not settings.disable_memory_manager:
        memory_manager_shutdown()
    settings.reset()


def test_heap_allocation_round_trip():
    m = MemoryManager()
    address = m.allocate(10)
    assert address & DEFAULT_ALIGNMENT_MASK == 0
    assert m.allocation_count() == 1
    m.free(address)
    assert m.allocation_count() == 0


def test_zero_size_allocations_are_unique():
    m = MemoryManager()
    a = m.allocate(0)
    b = m.allocate(0)
    assert a != b
    assert m.heap.allocation_count() == 2
    m.free(a)
    m.free(b)
    assert m.heap.allocation_count() == 0


def test_permanent_aligned_allocation_and_free_warning(caplog):
    m = MemoryManager()
    address = m.allocate_extended(20, MemoryManagerId.PERMANENT, 63)
    assert address & 63 == 0
    assert m.permanent.contains(address)
    with caplog.at_level(logging.WARNING, logger="hxkit.memory"):
        m.free(address)
    assert "free from permanent" in caplog.text
    assert m.permanent.allocation_count() == 0


def test_free_from_permanent_while_shutting_down_is_quiet(caplog):
    settings.reset()
    settings.is_shutting_down = True
    try:
        m = MemoryManager()
        address = m.allocate_extended(8, MemoryManagerId.PERMANENT)
        with caplog.at_level(logging.WARNING, logger="hxkit.memory"):
            m.free(address)
        assert "free from permanent" not in caplog.text
        assert m.permanent.allocation_count() == 0
    finally:
        settings.reset()


def test_overflow_goes_to_heap():
    m = MemoryManager(permanent_budget=16)
    address = m.allocate_extended(32, MemoryManagerId.PERMANENT)
    assert not m.permanent.contains(address)
    assert m.heap.allocation_count() == 1
    m.free(address)
    assert m.heap.allocation_count() == 0


def test_temporary_stack_scope_restores_heap():
    m = MemoryManager()
    scope = _Scope()
    previous = m.begin_scope(scope, MemoryManagerId.TEMPORARY_STACK)
    assert previous == MemoryManagerId.HEAP
    assert m.current_id == MemoryManagerId.TEMPORARY_STACK
    address = m.allocate(8)
    assert m.temporary_stack.contains(address)
    m.free(address)
    m.end_scope(scope, previous)
    assert m.current_id == MemoryManagerId.HEAP
    assert m.temporary_stack.bytes_allocated() == 0
    assert m.temporary_stack.high_water() >= 8


def test_temporary_stack_leak_is_reported():
    m = MemoryManager()
    scope = _Scope()
    previous = m.begin_scope(scope, MemoryManagerId.TEMPORARY_STACK)
    m.allocate(8)
    with pytest.raises(AllocationError):
        m.end_scope(scope, previous)
    assert m.current_id == MemoryManagerId.HEAP


def test_invalid_ids_and_masks():
    m = MemoryManager()
    with pytest.raises(ValueError):
        m.begin_scope(_Scope(), MemoryManagerId.MAX)
    with pytest.raises(ValueError):
        m.get_allocator(MemoryManagerId.CURRENT)
    with pytest.raises(ValueError):
        m.allocate_extended(4, MemoryManagerId.HEAP, 6)


def test_scratchpad_ids_share_one_allocator():
    m = MemoryManager()
    assert m.get_allocator(MemoryManagerId.SCRATCH_PAGE0) is m.get_allocator(
        MemoryManagerId.SCRATCH_ALL
    )
    scope = _Scope()
    previous = m.begin_scope(scope, MemoryManagerId.SCRATCH_PAGE1)
    address = m.allocate(4)
    assert m.scratchpad.contains(address)
    m.free(address)
    assert m.scratchpad.allocation_count(MemoryManagerId.SCRATCH_PAGE1) == 1
    m.end_scope(scope, previous)
    assert m.scratchpad.allocation_count(MemoryManagerId.SCRATCH_PAGE1) == 0
    assert m.allocation_count() == 0


def test_shutdown_detects_permanent_leak():
    m = MemoryManager()
    m.allocate_extended(8, MemoryManagerId.PERMANENT)
    with pytest.raises(AllocationError):
        m.shutdown()


def test_global_malloc_free(global_manager):
    address = malloc(24)
    assert address & DEFAULT_ALIGNMENT_MASK == 0
    assert memory_manager_allocation_count() == 1
    free(address)
    assert memory_manager_allocation_count() == 0


def test_scope_counts_and_nesting(global_manager):
    with MemoryManagerScope(MemoryManagerId.TEMPORARY_STACK) as outer:
        first = malloc(16)
        before = outer.total_bytes_allocated()
        with MemoryManagerScope(MemoryManagerId.TEMPORARY_STACK) as inner:
            second = malloc(8)
            assert inner.scope_allocation_count() == 1
            assert inner.total_allocation_count() == 2
            assert inner.scope_bytes_allocated() >= 8
            free(second)
        assert outer.total_bytes_allocated() == before
        assert outer.scope_allocation_count() == 1
        free(first)
    assert memory_manager_allocation_count() == 0


def test_scratch_scope(global_manager):
    with MemoryManagerScope(MemoryManagerId.SCRATCH_TEMP) as scope:
        address = malloc(4)
        assert is_scratchpad(address)
        assert scope.scope_allocation_count() == 1
        free(address)
    heap_address = malloc(4)
    assert not is_scratchpad(heap_address)
    free(heap_address)
    assert memory_manager_allocation_count() == 0


def test_scratch_without_scope_fails(global_manager):
    with pytest.raises(AllocationError):
        malloc_ext(4, MemoryManagerId.SCRATCH_PAGE0)


def test_scope_with_invalid_id(global_manager):
    with pytest.raises(ValueError):
        with MemoryManagerScope(MemoryManagerId.CURRENT):
            pass


def test_shutdown_reports_leaks_then_disables(global_manager):
    address = malloc(4)
    with pytest.raises(AllocationError):
        memory_manager_shutdown()
    free(address)
    memory_manager_shutdown()
    assert settings.disable_memory_manager is True
    assert memory_manager_allocation_count() == 0
    plain = malloc(4)
    free(plain)
    with pytest.raises(ValueError):
        malloc_ext(4, MemoryManagerId.HEAP, 63)
    with MemoryManagerScope(MemoryManagerId.TEMPORARY_STACK) as scope:
        assert scope.total_allocation_count() == 0


def test_double_init_is_rejected(global_manager):
    with pytest.raises(RuntimeError):
        memory_manager_init()


def test_is_scratchpad_rejects_none():
    assert is_scratchpad(None) is False