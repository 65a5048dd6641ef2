from types import SimpleNamespace

import pytest

from hxkit.allocators import (
    DEFAULT_ALIGNMENT_MASK,
    AllocationError,
    MemoryManagerId,
    OsHeapAllocator,
    ScratchpadAllocator,
    StackAllocator,
    TempStackAllocator,
)

PAGE0 = MemoryManagerId.SCRATCH_PAGE0
ALL = MemoryManagerId.SCRATCH_ALL


def _snapshot(allocator, id=MemoryManagerId.CURRENT):
    return SimpleNamespace(
        previous_allocation_count=allocator.allocation_count(id),
        previous_bytes_allocated=allocator.bytes_allocated(id),
    )


def test_console_id_is_heap():
    heap = OsHeapAllocator("heap")
    heap.allocate(8)
    assert MemoryManagerId.CONSOLE is MemoryManagerId.HEAP
    assert heap.allocation_count(MemoryManagerId.CONSOLE) == 1
    assert heap.bytes_allocated(MemoryManagerId.CONSOLE) == 8


def test_heap_counts_and_alignment():
    heap = OsHeapAllocator("heap")
    a = heap.allocate(10)
    b = heap.allocate(20)
    assert a & DEFAULT_ALIGNMENT_MASK == 0
    assert b & DEFAULT_ALIGNMENT_MASK == 0
    assert a != b
    assert heap.allocation_count() == 2
    assert heap.bytes_allocated() == 30
    heap.free(a)
    assert heap.allocation_count() == 1
    assert heap.bytes_allocated() == 20
    assert heap.high_water() == 30


def test_heap_blocks_do_not_overlap():
    heap = OsHeapAllocator("heap")
    blocks = sorted((heap.allocate(size), size) for size in (5, 17, 64, 1))
    for (addr, size), (next_addr, _) in zip(blocks, blocks[1:]):
        assert addr + size <= next_addr


def test_heap_zero_size_is_one_byte():
    heap = OsHeapAllocator("heap")
    heap.allocate(0)
    assert heap.bytes_allocated() == 1


def test_heap_large_alignment():
    heap = OsHeapAllocator("heap")
    address = heap.allocate(3, 63)
    assert address & 63 == 0


def test_heap_free_none_and_double_free():
    heap = OsHeapAllocator("heap")
    heap.free(None)
    address = heap.allocate(4)
    keep = heap.allocate(4)
    heap.free(address)
    with pytest.raises(AllocationError):
        heap.free(address)
    assert heap.allocation_count() == 1
    heap.free(keep)
    assert heap.allocation_count() == 0


def test_bad_alignment_mask_rejected():
    heap = OsHeapAllocator("heap")
    with pytest.raises(ValueError):
        heap.allocate(8, 6)


def test_stack_allocates_within_range():
    stack = StackAllocator(0x1000, 64, "perm")
    a = stack.allocate(3)
    b = stack.allocate(8)
    assert a == 0x1000
    assert b & DEFAULT_ALIGNMENT_MASK == 0
    assert b >= a + 3
    assert stack.contains(a) and stack.contains(b)
    assert not stack.contains(0x1000 + 64)
    assert stack.allocation_count() == 2
    assert stack.bytes_allocated() == b + 8 - 0x1000


def test_stack_overflow_returns_none():
    stack = StackAllocator(0x1000, 16, "perm")
    assert stack.allocate(16) is not None and stack.allocate(1) is None
    assert stack.allocation_count() == 1


def test_stack_free_and_unexpected_free():
    stack = StackAllocator(0x1000, 64, "perm")
    address = stack.allocate(8)
    stack.free(address)
    assert stack.allocation_count() == 0
    with pytest.raises(AllocationError):
        stack.free(address)
    with pytest.raises(AllocationError):
        stack.free(0x2000)


def test_stack_release_returns_base():
    stack = StackAllocator(0x4000, 32, "perm")
    assert stack.release() == 0x4000


def test_temp_stack_rewinds_at_scope_end():
    temp = TempStackAllocator(0x1000, 256, "temp")
    temp.allocate(16)
    scope = _snapshot(temp)
    inner = [temp.allocate(32), temp.allocate(32)]
    peak = temp.bytes_allocated()
    for address in inner:
        temp.free(address)
    temp.end_scope(scope, MemoryManagerId.HEAP)
    assert temp.bytes_allocated() == scope.previous_bytes_allocated
    assert temp.allocation_count() == scope.previous_allocation_count
    assert temp.high_water() == peak
    again = temp.allocate(32)
    assert again == inner[0]


def test_temp_stack_leak_raises():
    temp = TempStackAllocator(0x1000, 256, "temp")
    scope = _snapshot(temp)
    temp.allocate(8)
    with pytest.raises(AllocationError):
        temp.end_scope(scope, MemoryManagerId.HEAP)


def test_scratchpad_section_lifecycle():
    pad = ScratchpadAllocator(0x8000, 64, 32, "scratch")
    pad.begin_scope(None, PAGE0)
    a = pad.allocate(10)
    b = pad.allocate(10)
    assert pad.contains(a) and pad.contains(b)
    assert pad.allocation_count(PAGE0) == 2
    used = pad.bytes_allocated(PAGE0)
    assert used >= 20
    pad.end_scope(None, MemoryManagerId.HEAP)
    assert pad.bytes_allocated(PAGE0) == 0
    assert pad.allocation_count(PAGE0) == 0
    assert pad.high_water(PAGE0) == used


def test_scratchpad_pages_are_disjoint():
    pad = ScratchpadAllocator(0x8000, 64, 32, "scratch")
    starts = []
    for id in (PAGE0, MemoryManagerId.SCRATCH_PAGE1, MemoryManagerId.SCRATCH_PAGE2,
               MemoryManagerId.SCRATCH_TEMP):
        pad.begin_scope(None, id)
        starts.append(pad.allocate(1))
        pad.end_scope(None, MemoryManagerId.HEAP)
    assert starts == sorted(starts)
    assert len(set(starts)) == 4
    assert all(pad.contains(s) for s in starts)


def test_scratchpad_overflow_returns_none():
    pad = ScratchpadAllocator(0x8000, 64, 32, "scratch")
    pad.begin_scope(None, MemoryManagerId.SCRATCH_TEMP)
    assert pad.allocate(33) is None
    assert pad.allocation_count(MemoryManagerId.SCRATCH_TEMP) == 0


def test_scratchpad_reopen_and_exclusive_all():
    pad = ScratchpadAllocator(0x8000, 64, 32, "scratch")
    pad.begin_scope(None, PAGE0)
    with pytest.raises(AllocationError):
        pad.begin_scope(None, PAGE0)
    with pytest.raises(AllocationError):
        pad.begin_scope(None, ALL)
    pad.end_scope(None, MemoryManagerId.HEAP)
    pad.begin_scope(None, ALL)
    with pytest.raises(AllocationError):
        pad.begin_scope(None, MemoryManagerId.SCRATCH_PAGE1)


def test_scratchpad_allocate_without_scope_raises():
    pad = ScratchpadAllocator(0x8000, 64, 32, "scratch")
    with pytest.raises(AllocationError):
        pad.allocate(4)
    with pytest.raises(ValueError):
        pad.allocation_count(MemoryManagerId.HEAP)