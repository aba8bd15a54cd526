"""Tracking of the memory handed to each world."""

from dataclasses import dataclass
from typing import List, Optional

from .constants import WORLD_COUNT


class AllocationError(Exception):
    """Raised when a world's memory cannot be allocated, found or freed."""


@dataclass
class Allocation:
    """One tracked allocation slot."""

    memory: Optional[bytearray] = None
    size: int = 0


def _world_type(world):
    if world is None:
        raise AllocationError("Invalid world pointer.")
    return int(getattr(world, "type", world))


class MemoryManager:
    """Keeps a fixed number of allocation slots, one per world."""

    def __init__(self, slots=WORLD_COUNT):
        self.slots: List[Allocation] = [Allocation() for _ in range(slots)]

    def reset(self):
        """Empty every slot."""
        for slot in self.slots:
            slot.memory = None
            slot.size = 0

    def allocate(self, world, size):
        """Allocate ``size`` bytes for ``world`` and track it in the first free slot.

        When every slot is taken the memory is still returned, untracked.
        """
        world_type = _world_type(world)
        try:
            memory = bytearray(size)
        except (MemoryError, OverflowError, ValueError) as exc:
            raise AllocationError("Memory allocation failed.") from exc
        free_slot = next((slot for slot in self.slots if slot.memory is None), None)
        if free_slot is not None:
            free_slot.memory = memory
            free_slot.size = size
        print(f"[CCA] Allocated {size} bytes for world type {world_type}")
        return memory

    def memory_for(self, world):
        """Memory in the slot numbered by the world's type, or None."""
        return self.slots[_world_type(world)].memory

    def memory_at(self, index):
        """Memory in slot ``index``, or None."""
        return self.slots[index].memory

    def size_for(self, world):
        """Size of the memory in the slot numbered by the world's type, 0 if empty."""
        slot = self.slots[_world_type(world)]
        return slot.size if slot.memory is not None else 0

    def free(self, world, memory):
        """Release a tracked allocation."""
        if world is None or memory is None:
            raise AllocationError("Invalid world or memory pointer.")
        world_type = _world_type(world)
        for slot in self.slots:
            if slot.memory is memory:
                slot.memory = None
                slot.size = 0
                print(f"Freed memory for world type {world_type}")
                return
        raise AllocationError(f"Memory not found for world type {world_type}")