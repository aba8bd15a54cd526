"""Two realm programs that exchange messages through one shared memory block."""

import random
import time
from multiprocessing import shared_memory

from .realm import RealmError

SHM_SIZE = 1024
DEFAULT_NAME = "shmfile"

# Layout of a memory block: a 4-byte private value, a 100-byte message, a key byte.
_MESSAGE_OFFSET = 4
_MESSAGE_SIZE = 100
_BLOCK_SIZE = _MESSAGE_OFFSET + _MESSAGE_SIZE + 1

FIRST_MESSAGE = "Hello from Realm1!"
REPLY_MESSAGE = "Hello back from Realm2!"


def encrypt_private_value(value, key):
    """XOR a private value with a one-byte key."""
    return value ^ (key & 0xFF)


def write_message(buffer, message):
    """Store ``message`` as a NUL-terminated string in the block's message field."""
    data = message.encode() + b"\0"
    if len(data) > _MESSAGE_SIZE:
        raise ValueError(f"Message longer than {_MESSAGE_SIZE - 1} bytes")
    buffer[_MESSAGE_OFFSET:_MESSAGE_OFFSET + len(data)] = data


def read_message(buffer):
    """Return the NUL-terminated string in the block's message field."""
    field = bytes(buffer[_MESSAGE_OFFSET:_MESSAGE_OFFSET + _MESSAGE_SIZE])
    return field.split(b"\0", 1)[0].decode(errors="replace")


def _private_setup(label, value, rng):
    source = rng if rng is not None else random.Random()
    print(f"[REALM] {label} private data:  {value}")
    key = source.randrange(256)
    print(f"[REALM] {label} private data encrypted: {encrypt_private_value(value, key)}")


def _attach(name, create):
    try:
        if create:
            try:
                return shared_memory.SharedMemory(name=name, create=True, size=SHM_SIZE)
            except FileExistsError:
                pass
        segment = shared_memory.SharedMemory(name=name)
    except (OSError, ValueError) as exc:
        raise RealmError(f"shmget: {exc}") from exc
    if segment.size < _BLOCK_SIZE:
        segment.close()
        raise RealmError("shmat: shared segment too small")
    return segment


def run_first_realm(name=DEFAULT_NAME, wait=2.0, rng=None):
    """Create the shared block, greet the peer, wait, and return the reply read back."""
    _private_setup("Realm1", 100, rng)
    segment = _attach(name, create=True)
    try:
        write_message(segment.buf, FIRST_MESSAGE)
        print(f"[REALM] Realm1 writing shared memory: {read_message(segment.buf)}")
        print("[REALM] Realm1 waiting for Realm2...")
        time.sleep(wait)
        reply = read_message(segment.buf)
        print(f"[REALM] Realm1 receive message from Realm2: {reply}")
    finally:
        segment.close()
    return reply


def run_second_realm(name=DEFAULT_NAME, wait=1.0, rng=None):
    """Attach to the shared block, read the greeting, reply, then remove the block."""
    _private_setup("Realm2", 200, rng)
    time.sleep(wait)
    segment = _attach(name, create=False)
    try:
        received = read_message(segment.buf)
        print(f"[REALM] Realm2 receive message from Realm1: {received}")
        write_message(segment.buf, REPLY_MESSAGE)
        print(f"[REALM] Realm2 writing shared memory: {read_message(segment.buf)}")
        time.sleep(wait)
    finally:
        segment.close()
        try:
            segment.unlink()
        except FileNotFoundError:
            pass
    return received