"""Realm management: isolated private memory, shared memory and realm processes."""

import itertools
import os
import random
import signal
import sys
import time
from dataclasses import dataclass, field
from multiprocessing import shared_memory
from typing import List, Optional, Sequence, Union

KEY_LENGTH = 32
MAX_ARGS = 31
PREVIEW_BYTES = 16
ATTACK_READ_BYTES = 256
_SHM_NAME_LIMIT = 31

_next_id = itertools.count(1)


class RealmError(Exception):
    """Raised when a realm or its memory cannot be created, found or started."""


@dataclass
class RealmMemory:
    """A realm memory area, either private or shared with other processes."""

    buffer: Union[bytearray, memoryview]
    size: int
    is_shared: bool = False
    name: str = ""
    handle: Optional[shared_memory.SharedMemory] = field(default=None, repr=False)

    def read(self, length=None):
        """Return up to ``length`` bytes from the start of the area."""
        count = self.size if length is None else min(length, self.size)
        return bytes(self.buffer[:count])


@dataclass
class Realm:
    """One realm: its program, memory, key and running process."""

    id: int
    program: str
    argv: List[str]
    private_memory: RealmMemory
    shared_memory: Optional[RealmMemory]
    key: bytes
    is_malicious: bool = False
    pid: Optional[int] = None


def _cstring(data):
    return bytes(data).split(b"\0", 1)[0].decode("latin-1")


def _write_cstring(buffer, text):
    data = text.encode() + b"\0"
    count = min(len(data), len(buffer))
    buffer[:count] = data[:count]


def encrypt_memory(memory, key):
    """XOR ``memory`` in place with the repeating ``key``; applying it twice restores it."""
    size = len(memory)
    if size == 0 or not key:
        return
    stream = (bytes(key) * (size // len(key) + 1))[:size]
    mixed = int.from_bytes(bytes(memory), "little") ^ int.from_bytes(stream, "little")
    memory[:] = mixed.to_bytes(size, "little")


def generate_random_key(length, rng=None):
    """Return ``length`` random bytes."""
    if length <= 0:
        raise ValueError("Key length must be positive")
    source = rng if rng is not None else random
    return bytes(source.randrange(256) for _ in range(length))


def memory_preview(memory):
    """Hex dump of the first sixteen bytes of ``memory``."""
    data = bytes(memory[:PREVIEW_BYTES])
    text = "".join(f"{byte:02X} " for byte in data)
    if len(memory) > PREVIEW_BYTES:
        text += "..."
    return text


def create_shared_memory(name, size):
    """Create a named shared memory area of ``size`` bytes."""
    shm_name = f"/realm_shm_{name}"[:_SHM_NAME_LIMIT]
    os_name = shm_name.lstrip("/")
    try:
        try:
            handle = shared_memory.SharedMemory(name=os_name, create=True, size=size)
        except FileExistsError:
            stale = shared_memory.SharedMemory(name=os_name)
            stale.close()
            stale.unlink()
            handle = shared_memory.SharedMemory(name=os_name, create=True, size=size)
    except (OSError, ValueError) as exc:
        raise RealmError(f"Cannot create shared memory {shm_name}: {exc}") from exc
    return RealmMemory(handle.buf, size, is_shared=True, name=shm_name, handle=handle)


def destroy_shared_memory(memory):
    """Unmap and remove a shared memory area."""
    handle = memory.handle
    if handle is None:
        return
    memory.buffer = bytearray()
    memory.handle = None
    handle.close()
    try:
        handle.unlink()
    except FileNotFoundError:
        pass


class RealmMonitor:
    """Creates, runs and tears down realms, as a realm management monitor would."""

    attack_delay = 1.0
    run_time = 10.0

    def __init__(self):
        self.realms: List[Realm] = []
        self.rng = random.Random()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        for realm in list(self.realms):
            self.destroy(realm.id)

    def create(self, program, argv=(), private_mem_size=4096, shared_mem_size=0,
               is_malicious=False):
        """Create a realm and return its id."""
        realm_id = next(_next_id)
        args: Sequence[str] = list(argv or ())[:MAX_ARGS]
        if private_mem_size <= 0:
            raise RealmError("Private memory size must be positive")

        private = RealmMemory(bytearray(private_mem_size), private_mem_size)
        print(f"[REALM] Realm {realm_id} Private Mem Size: 0x{private_mem_size:x}")
        _write_cstring(private.buffer, f"Realm {realm_id} private data")

        key = generate_random_key(KEY_LENGTH, self.rng)
        encrypt_memory(private.buffer, key)
        print(f"[REALM] Realm {realm_id} encrypted memory:")
        print(f"        Memory content: {memory_preview(private.buffer)}")

        shared = None
        if shared_mem_size > 0:
            shared = create_shared_memory(f"realm{realm_id}_shared", shared_mem_size)
            _write_cstring(shared.buffer, f"Realm {realm_id} shared data")

        self.realms.append(
            Realm(realm_id, program, list(args), private, shared, key, bool(is_malicious))
        )
        return realm_id

    def get(self, realm_id):
        """Return the realm with ``realm_id``."""
        for realm in self.realms:
            if realm.id == realm_id:
                return realm
        raise RealmError(f"No realm with id {realm_id}")

    def attempt_malicious_access(self, attacker_id):
        """Let a malicious realm read another realm's memory.

        Returns ``(target_id, private_leaked, shared_readable)`` or None when the
        attacker is unknown, not malicious or alone. ``shared_readable`` is None
        when the target has no shared memory.
        """
        attacker = next(
            (r for r in self.realms if r.id == attacker_id and r.is_malicious), None
        )
        if attacker is None:
            return None
        target = next((r for r in self.realms if r.id != attacker_id), None)
        if target is None:
            return None

        print(f"\n[REALM] Realm {attacker_id} (malicious) attempting to access "
              f"Realm {target.id} private memory...")
        stolen = _cstring(target.private_memory.read(ATTACK_READ_BYTES))
        leaked = "private data" in stolen
        if leaked:
            print(f"[REALM] ATTACK SUCCESSFUL! Realm {attacker_id} accessed "
                  f"Realm {target.id} private data: {stolen}")
        else:
            print(f"[REALM] ATTACK FAILED! Realm {attacker_id} cannot access "
                  f"Realm {target.id} private memory")

        shared_ok = None
        if target.shared_memory is not None:
            print(f"\n[REALM] Realm {attacker_id} attempting to access "
                  f"Realm {target.id} shared memory...")
            text = _cstring(target.shared_memory.read(ATTACK_READ_BYTES))
            shared_ok = "shared data" in text
            if shared_ok:
                print(f"[REALM] Access to shared memory successful (expected): {text}")
            else:
                print("[REALM] Shared memory access failed unexpectedly")
        return target.id, leaked, shared_ok

    def _run_child(self, realm):
        kind = "malicious" if realm.is_malicious else "normal"
        print(f"[REALM] Realm {realm.id} ({kind}) starting program: {realm.program}")
        if realm.is_malicious:
            time.sleep(self.attack_delay)
            self.attempt_malicious_access(realm.id)
            return
        print(f"[REALM] Realm {realm.id} running normally")
        print(f"[REALM] Realm {realm.id} decrypting memory...")
        encrypt_memory(realm.private_memory.buffer, realm.key)
        own = _cstring(realm.private_memory.read())
        print(f"[REALM] Realm {realm.id} accessing its own private data: {own}")
        encrypt_memory(realm.private_memory.buffer, realm.key)
        if realm.shared_memory is not None:
            shared = _cstring(realm.shared_memory.read())
            print(f"[REALM] Realm {realm.id} accessing its own shared data: {shared}")
        sys.stdout.flush()
        time.sleep(self.run_time)

    def start(self, realm_id):
        """Fork a process that runs the realm; return its pid."""
        realm = self.get(realm_id)
        if not hasattr(os, "fork"):
            raise RealmError("Starting realms needs fork()")
        sys.stdout.flush()
        sys.stderr.flush()
        try:
            pid = os.fork()
        except OSError as exc:
            raise RealmError(f"fork: {exc}") from exc
        if pid == 0:
            code = 0
            try:
                self._run_child(realm)
            except BaseException:
                code = 1
            finally:
                sys.stdout.flush()
                sys.stderr.flush()
                os._exit(code)
        realm.pid = pid
        print(f"[REALM] Realm {realm_id} started with PID {pid}")
        return pid

    def stop(self, realm_id):
        """Terminate a running realm; False when it is unknown or not running."""
        for realm in self.realms:
            if realm.id == realm_id and realm.pid is not None:
                try:
                    os.kill(realm.pid, signal.SIGTERM)
                except ProcessLookupError:
                    pass
                try:
                    os.waitpid(realm.pid, 0)
                except ChildProcessError:
                    pass
                realm.pid = None
                return True
        return False

    def destroy(self, realm_id):
        """Stop a realm, release its memory and forget it; False when unknown."""
        for position, realm in enumerate(self.realms):
            if realm.id == realm_id:
                if realm.pid is not None:
                    self.stop(realm_id)
                if realm.shared_memory is not None:
                    destroy_shared_memory(realm.shared_memory)
                del self.realms[position]
                return True
        return False