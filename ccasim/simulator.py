"""The whole CCA run: allocate memory, attest and start the four worlds."""

import argparse
import time

from .constants import SIZE_1GB
from .memory import MemoryManager
from .world import (
    WorldType,
    initialize_all_worlds,
    normal_world,
    realm_world,
    root_world,
    secure_world,
)

# Rows and columns follow this order: who may access whose memory.
_MATRIX_ORDER = (WorldType.SECURE, WorldType.NORMAL, WorldType.ROOT, WorldType.REALM)
VISIT_MATRIX = (
    (1, 1, 0, 0),
    (0, 1, 0, 0),
    (1, 1, 1, 1),
    (0, 1, 0, 1),
)

_TYPES = (WorldType.ROOT, WorldType.NORMAL, WorldType.SECURE, WorldType.REALM)
_ENTRIES = (root_world, normal_world, secure_world, realm_world)


def can_access(source, target):
    """True when world ``source`` may access the memory of world ``target``."""
    row = _MATRIX_ORDER.index(WorldType(source))
    column = _MATRIX_ORDER.index(WorldType(target))
    return bool(VISIT_MATRIX[row][column])


def simulate_authentication(world, delay=0.0):
    """Attest a world; attestation always succeeds."""
    print(f"[CCA] Attestation World {int(world.type)}...")
    time.sleep(delay)
    print(f"[CCA] Attestation successful for World {int(world.type)}.")
    return True


def run_simulation(world_size=SIZE_1GB, start_delay=2.0, run_delay=5.0):
    """Run all four worlds and return them once they have finished."""
    worlds = initialize_all_worlds(_TYPES, _ENTRIES)

    print("[GPT]========== CCA World Memory Allocation ==========")
    print("[CCA] Memory Allocation Starting...")
    memory = MemoryManager()
    blocks = [memory.allocate(world, world_size) for world in worlds]
    for world in worlds:
        print(
            f"{world.type.name.capitalize()} World allocated memory size: "
            f"0x{memory.size_for(world):x} Bytes, ptr: 0x{id(memory.memory_for(world)):x}"
        )

    print("[GPT]========== CCA World Attestation ==========")
    print("[CCA] Attestation Starting...")
    for world in worlds:
        simulate_authentication(world)

    print("[GPT]========== CCA World Starting ==========")
    worlds[0].start()
    time.sleep(start_delay)
    for world in worlds[1:]:
        world.start()
    time.sleep(run_delay)
    for world in worlds:
        world.join()

    for world, block in zip(worlds, blocks):
        memory.free(world, block)
    return worlds


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run the CCA world simulation.")
    parser.add_argument("--world-size", type=int, default=SIZE_1GB)
    parser.add_argument("--start-delay", type=float, default=2.0)
    parser.add_argument("--run-delay", type=float, default=5.0)
    args = parser.parse_args(argv)
    run_simulation(args.world_size, args.start_delay, args.run_delay)
    return 0