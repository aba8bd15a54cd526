"""Benchmark of GPI lookups at random physical addresses."""

import argparse
import random
import time

from .constants import SIZE_1GB, SIZE_4GB, WORLD_COUNT
from .gpt import GptError, GranuleProtectionTable, base_address

DEFAULT_COUNT = 5000
_RAND_LIMIT = 1 << 31


def build_root_table():
    """Build the root world's table, reporting but not stopping at failed stages."""
    print("[CCA] Root World is running.")
    table = GranuleProtectionTable()
    print("[GPT] PAS region initialization starting...")
    for index in range(WORLD_COUNT):
        try:
            table.init_pas_region(base_address(index), SIZE_1GB, index)
        except GptError as exc:
            print(f"[GPT] {exc}")
            print("[GPT] PAS region initialization failed...")

    print("[GPT] L0 GPT initialization starting...")
    try:
        table.init_l0()
    except GptError as exc:
        print(f"[GPT] {exc}")
        print("[GPT] L0 GPT initialization failed...")

    print("[GPT] L1 GPT initialization starting...")
    try:
        table.init_l1()
    except GptError as exc:
        print(f"[GPT] {exc}")
        print("[GPT] L1 GPT initialization failed...")
    return table


def random_address(rng, max_size=SIZE_4GB):
    """A random address in ``[0, max_size]`` built from three 31-bit draws."""
    high = rng.randrange(_RAND_LIMIT)
    middle = rng.randrange(_RAND_LIMIT)
    low = rng.randrange(_RAND_LIMIT)
    return ((high << 32) | (middle << 16) | low) % (max_size + 1)


def _pointer(value):
    return "(nil)" if not value else f"0x{value:x}"


def run_benchmark(table, count=DEFAULT_COUNT, rng=None):
    """Look up ``count`` random addresses; return (address, entry, ticks) for each.

    The entry is None for an address the table does not cover.
    """
    source = rng if rng is not None else random.Random()
    results = []
    for i in range(count):
        address = random_address(source)
        start = time.process_time()
        try:
            entry = table.check_pas_gpi(address)
        except GptError:
            entry = None
        end = time.process_time()
        ticks = (end - start) * 1_000_000
        shown = "invalid" if entry is None else _pointer(entry)
        print(f"[GPT] [{i}]cycle: {ticks:f} addr: {_pointer(address)} gpi: {shown}")
        results.append((address, entry, ticks))
    return results


def main(argv=None):
    parser = argparse.ArgumentParser(description="Benchmark GPT lookups.")
    parser.add_argument("--count", type=int, default=DEFAULT_COUNT)
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args(argv)
    table = build_root_table()
    run_benchmark(table, args.count, random.Random(args.seed))
    return 0