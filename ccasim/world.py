"""The four CCA worlds, their entry points and the threads that run them."""

import os
import stat
import subprocess
import threading
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Any, Callable, Optional

from .constants import SIZE_1GB, WORLD_COUNT
from .gpt import GptError, GranuleProtectionTable, base_address

REALM_SCRIPT = "./realm_bmk/run.sh"
BENCHMARK_SCRIPT = "./benchmark/realmvm.sh"


class WorldType(IntEnum):
    """The kind of a world."""

    ROOT = 0
    NORMAL = 1
    SECURE = 2
    REALM = 3


class WorldState(IntEnum):
    """Life cycle of a world."""

    INITIALIZED = 0
    RUNNING = 1
    TERMINATED = 2


@dataclass
class World:
    """One world, run on its own thread."""

    worldid: int
    type: WorldType
    entry: Callable[[], Any]
    state: WorldState = WorldState.INITIALIZED
    thread: Optional[threading.Thread] = None
    result: Any = None

    def _run(self):
        self.result = self.entry()

    def start(self):
        """Start the entry on a new thread; only an initialized world starts."""
        if self.state != WorldState.INITIALIZED:
            return
        thread = threading.Thread(
            target=self._run, name=f"world-{self.worldid}", daemon=True
        )
        thread.start()
        self.thread = thread
        self.state = WorldState.RUNNING

    def join(self, timeout=None):
        """Wait for the world's thread; True once it has finished."""
        if self.thread is None:
            return False
        self.thread.join(timeout)
        if self.thread.is_alive():
            return False
        self.state = WorldState.TERMINATED
        return True


def initialize_all_worlds(types, entries):
    """Build one world per type; each takes the entry indexed by its type."""
    return [
        World(worldid, WorldType(kind), entries[int(kind)])
        for worldid, kind in enumerate(types)
    ]


def _announce(kind):
    """Print that a world of the given kind is running and return the line."""
    line = f"[CCA] {kind.name.capitalize()} World is running."
    print(line)
    return line


def normal_world():
    """Announce the normal world; returns the announcement."""
    return _announce(WorldType.NORMAL)


def secure_world():
    """Announce the secure world; returns the announcement."""
    return _announce(WorldType.SECURE)


def root_world():
    """Build the granule protection table; None when a stage fails."""
    print("[CCA] Root World is running.")
    table = GranuleProtectionTable()
    print("[GPT] PAS region initialization starting...")
    try:
        for index in range(WORLD_COUNT):
            table.init_pas_region(base_address(index), SIZE_1GB, index)
    except GptError as exc:
        print(f"[GPT] {exc}")
        print("[GPT] PAS region initialization failed...")
        return None

    print("[GPT] L0 GPT initialization starting...")
    try:
        table.init_l0()
    except GptError as exc:
        print(f"[GPT] {exc}")
        print("[GPT] L0 GPT initialization failed...")
        return None

    print("[GPT] L1 GPT initialization starting...")
    try:
        table.init_l1()
    except GptError as exc:
        print(f"[GPT] {exc}")
        print("[GPT] L1 GPT initialization failed...")
        return None
    return table


def realm_world(script=REALM_SCRIPT):
    """Run the realm script through the shell and return its exit status."""
    print("[GPT] ========== Realm VM Simulation ==========")
    print("[CCA] Realm World is running.")
    return subprocess.run(script, shell=True, check=False).returncode


def benchmark_realm_world(script=BENCHMARK_SCRIPT):
    """Make the realm VM script executable, run it and return its exit status."""
    print("[CCA] Realm World is running.")
    path = Path(script)
    if path.is_file():
        try:
            os.chmod(path, path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        except OSError:
            pass
    try:
        return subprocess.run(script, shell=True, check=False).returncode
    except OSError:
        print("[GPT] Realm VM creatation failed...")
        return None