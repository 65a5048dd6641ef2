"""The memory manager: a current allocator per thread and scoped switching.

Addresses are plain integers drawn from a simulated address space. Each
system-wide allocator owns a fixed range, except the heap, which grows.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from .allocators import (
    DEFAULT_ALIGNMENT_MASK,
    AllocationError,
    Allocator,
    MemoryManagerId,
    OsHeapAllocator,
    ScratchpadAllocator,
    StackAllocator,
    TempStackAllocator,
    _ScopeLike,
)
from .settings import settings

logger = logging.getLogger(__name__)

PERMANENT_BUDGET = 64 * 1024
TEMPORARY_STACK_BUDGET = 1024 * 1024
SCRATCH_PAGE_BUDGET = 16 * 1024
SCRATCH_TEMP_BUDGET = 64 * 1024

PERMANENT_BASE = 0x1000_0000
TEMPORARY_STACK_BASE = 0x2000_0000
SCRATCHPAD_BASE = 0x3000_0000

_SCRATCHPAD_SIZE = SCRATCH_PAGE_BUDGET * 3 + SCRATCH_TEMP_BUDGET


def _validate_id(id: int) -> MemoryManagerId:
    try:
        value = MemoryManagerId(id)
    except ValueError:
        raise ValueError(f"invalid memory manager id {id!r}") from None
    if not 0 <= value < MemoryManagerId.MAX:
        raise ValueError(f"invalid memory manager id {id!r}")
    return value


class MemoryManager:
    """Owns the system-wide allocators and routes allocations between them."""

    def __init__(
        self,
        permanent_budget: int = PERMANENT_BUDGET,
        temporary_stack_budget: int = TEMPORARY_STACK_BUDGET,
        scratch_page_budget: int = SCRATCH_PAGE_BUDGET,
        scratch_temp_budget: int = SCRATCH_TEMP_BUDGET,
    ) -> None:
        logger.info("memory manager init.")
        self._local = threading.local()
        self.heap = OsHeapAllocator("heap")
        self.permanent = StackAllocator(PERMANENT_BASE, permanent_budget, "perm")
        self.temporary_stack = TempStackAllocator(
            TEMPORARY_STACK_BASE, temporary_stack_budget, "temp"
        )
        self.scratchpad = ScratchpadAllocator(
            SCRATCHPAD_BASE, scratch_page_budget, scratch_temp_budget, "scratchpad"
        )
        self._allocators: dict[MemoryManagerId, Allocator] = {
            MemoryManagerId.HEAP: self.heap,
            MemoryManagerId.PERMANENT: self.permanent,
            MemoryManagerId.TEMPORARY_STACK: self.temporary_stack,
        }
        for value in range(MemoryManagerId.SCRATCH_PAGE0, MemoryManagerId.SCRATCH_ALL + 1):
            self._allocators[MemoryManagerId(value)] = self.scratchpad

    @property
    def current_id(self) -> MemoryManagerId:
        """The allocator used by this thread for plain allocations."""
        return getattr(self._local, "current", MemoryManagerId.HEAP)

    @current_id.setter
    def current_id(self, value: MemoryManagerId) -> None:
        self._local.current = value

    def get_allocator(self, id: MemoryManagerId) -> Allocator:
        return self._allocators[_validate_id(id)]

    def begin_scope(self, scope: _ScopeLike, new_id: MemoryManagerId) -> MemoryManagerId:
        """Make ``new_id`` current and return the id it replaced."""
        new_id = _validate_id(new_id)
        previous = self.current_id
        self._allocators[new_id].begin_scope(scope, new_id)
        self.current_id = new_id
        return previous

    def end_scope(self, scope: _ScopeLike, previous_id: MemoryManagerId) -> None:
        """Close the current scope and restore ``previous_id``."""
        previous_id = _validate_id(previous_id)
        try:
            self._allocators[self.current_id].end_scope(scope, previous_id)
        finally:
            self.current_id = previous_id

    def allocate(self, size: int) -> int:
        """Allocate from the current allocator, overflowing to the heap."""
        allocator = self._allocators[self.current_id]
        address = allocator.allocate(size, DEFAULT_ALIGNMENT_MASK)
        if address is not None:
            return address
        logger.warning("%s is overflowing to heap, size %d", allocator.label, size)
        return self.heap.allocate(size, DEFAULT_ALIGNMENT_MASK)

    def allocate_extended(
        self,
        size: int,
        id: MemoryManagerId = MemoryManagerId.CURRENT,
        alignment_mask: int = DEFAULT_ALIGNMENT_MASK,
    ) -> int:
        """Allocate from allocator ``id`` with the given alignment mask."""
        if id == MemoryManagerId.CURRENT:
            id = self.current_id
        allocator = self.get_allocator(id)
        address = allocator.allocate(size, alignment_mask)
        if address is not None:
            return address
        logger.warning("%s is overflowing to heap, size %d", allocator.label, size)
        return self.heap.allocate(size, alignment_mask)

    def free(self, address: Optional[int]) -> None:
        """Return ``address`` to whichever allocator handed it out."""
        if self.temporary_stack.contains(address):
            self.temporary_stack.free(address)
            return
        if self.scratchpad.contains(address):
            return
        if self.permanent.contains(address):
            if not settings.is_shutting_down:
                logger.warning("ERROR: free from permanent")
            self.permanent.free(address)
            return
        self.heap.free(address)

    def allocation_count(self) -> int:
        """Sum of live allocations over every allocator id."""
        total = 0
        logger.info("memory manager allocation count:")
        for value in range(MemoryManagerId.MAX):
            id = MemoryManagerId(value)
            allocator = self._allocators[id]
            count = allocator.allocation_count(id)
            logger.info(
                "  %s count %d size %d high_water %d",
                allocator.label, count, allocator.bytes_allocated(id), allocator.high_water(id),
            )
            total += count
        return total

    def shutdown(self) -> None:
        """Check for leaks in the fixed allocators and release their ranges."""
        if self.permanent.allocation_count(MemoryManagerId.PERMANENT):
            raise AllocationError("leaked permanent allocation")
        if self.temporary_stack.allocation_count(MemoryManagerId.TEMPORARY_STACK):
            raise AllocationError("leaked temporary allocation")
        self.permanent.release()
        self.temporary_stack.release()


class _State:
    def __init__(self) -> None:
        self.initialized = False
        self.manager: Optional[MemoryManager] = None


_state = _State()
_os_heap = OsHeapAllocator("os")


def _active_manager() -> Optional[MemoryManager]:
    if not _state.initialized:
        raise RuntimeError("memory manager used before initialisation")
    if (_state.manager is None) != settings.disable_memory_manager:
        raise RuntimeError("disable_memory_manager inconsistent")
    return _state.manager


class MemoryManagerScope:
    """Context manager that makes allocator ``id`` current on this thread."""

    def __init__(self, id: MemoryManagerId) -> None:
        self.id = MemoryManagerId(id)
        self.previous_id: Optional[MemoryManagerId] = None
        self.previous_allocation_count = 0
        self.previous_bytes_allocated = 0
        self._manager: Optional[MemoryManager] = None

    def __enter__(self) -> MemoryManagerScope:
        manager = _active_manager()
        if manager is None:
            return self
        self.previous_id = manager.begin_scope(self, self.id)
        self._manager = manager
        allocator = manager.get_allocator(self.id)
        self.previous_allocation_count = allocator.allocation_count(self.id)
        self.previous_bytes_allocated = allocator.bytes_allocated(self.id)
        logger.debug(
            " => %s, count %d, size %d",
            allocator.label, self.previous_allocation_count, self.previous_bytes_allocated,
        )
        return self

    def __exit__(self, *args: object) -> None:
        manager = self._manager
        if manager is None or self.previous_id is None:
            return
        logger.debug(
            " <= %s, count %d/%d, size %d/%d",
            manager.get_allocator(self.id).label,
            self.scope_allocation_count(), self.total_allocation_count(),
            self.scope_bytes_allocated(), self.total_bytes_allocated(),
        )
        self._manager = None
        manager.end_scope(self, self.previous_id)

    def _allocator(self) -> Optional[Allocator]:
        manager = _active_manager()
        return None if manager is None else manager.get_allocator(self.id)

    def total_allocation_count(self) -> int:
        allocator = self._allocator()
        return 0 if allocator is None else allocator.allocation_count(self.id)

    def total_bytes_allocated(self) -> int:
        allocator = self._allocator()
        return 0 if allocator is None else allocator.bytes_allocated(self.id)

    def scope_allocation_count(self) -> int:
        allocator = self._allocator()
        if allocator is None:
            return 0
        return allocator.allocation_count(self.id) - self.previous_allocation_count

    def scope_bytes_allocated(self) -> int:
        allocator = self._allocator()
        if allocator is None:
            return 0
        return allocator.bytes_allocated(self.id) - self.previous_bytes_allocated


def memory_manager_init() -> None:
    """Create the process-wide memory manager unless it is disabled."""
    _state.initialized = True
    if _state.manager is not None:
        raise RuntimeError("memory manager already initialised")
    if settings.disable_memory_manager:
        return
    _state.manager = MemoryManager()


def memory_manager_shutdown() -> None:
    """Check for leaks and tear down the memory manager."""
    manager = _active_manager()
    if manager is None:
        return
    count = manager.allocation_count()
    if count:
        raise AllocationError(f"memory leaks: {count}")
    manager.shutdown()
    # Later frees must come from the plain heap.
    settings.disable_memory_manager = True
    _state.manager = None


def memory_manager_allocation_count() -> int:
    manager = _active_manager()
    return 0 if manager is None else manager.allocation_count()


def malloc(size: int) -> int:
    """Allocate ``size`` bytes from the current allocator."""
    if not _state.initialized:
        memory_manager_init()
    manager = _active_manager()
    if manager is None:
        return _os_heap.allocate(size, DEFAULT_ALIGNMENT_MASK)
    return manager.allocate(size)


def malloc_ext(
    size: int,
    id: MemoryManagerId = MemoryManagerId.CURRENT,
    alignment_mask: int = DEFAULT_ALIGNMENT_MASK,
) -> int:
    """Allocate ``size`` bytes from allocator ``id`` with an alignment mask."""
    if not _state.initialized:
        memory_manager_init()
    manager = _active_manager()
    if manager is None:
        if alignment_mask > DEFAULT_ALIGNMENT_MASK:
            raise ValueError("alignment is not supported while the manager is disabled")
        return _os_heap.allocate(size, DEFAULT_ALIGNMENT_MASK)
    return manager.allocate_extended(size, id, alignment_mask)


def free(address: Optional[int]) -> None:
    """Free an address from :func:`malloc` or :func:`malloc_ext`."""
    manager = _active_manager()
    if manager is None:
        _os_heap.free(address)
    else:
        manager.free(address)


def is_scratchpad(address: Optional[int]) -> bool:
    """Whether ``address`` lies inside the scratchpad range."""
    return address is not None and SCRATCHPAD_BASE <= address < SCRATCHPAD_BASE + _SCRATCHPAD_SIZE