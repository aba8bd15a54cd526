# ccasim

A small simulator of a confidential-compute architecture. It models:

- four execution worlds (root, normal, secure and realm), each run on its
  own thread (`ccasim.world`);
- a two-level granule protection table (GPT) that assigns every physical
  granule to one of the worlds (`ccasim.gpt`, with the descriptor
  arithmetic in `ccasim.constants`);
- a tracker for the memory handed to each world (`ccasim.memory`);
- a realm monitor that creates realms with XOR-encrypted private memory and
  optional shared memory, runs them in forked processes, lets a malicious
  realm try to read another realm's memory, and stops and destroys them
  (`ccasim.realm`);
- two cooperating realm programs that exchange messages through a named
  shared memory block (`ccasim.realm_peers`).

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Commands

### `ccasim`

Runs the full simulation: allocates memory for each of the four worlds,
attests them, starts the root world (which builds the GPT), waits, then
starts the normal, secure and realm worlds, waits again, joins every world
and frees the memory.

```
ccasim [--world-size BYTES] [--start-delay SECONDS] [--run-delay SECONDS]
```

- `--world-size`: bytes allocated per world (default 1 GiB, `0x40000000`).
- `--start-delay`: seconds between starting the root world and the others
  (default 2.0).
- `--run-delay`: seconds to wait after starting all worlds (default 5.0).

The realm world runs the shell script `./realm_bmk/run.sh`, relative to the
current directory, and reports its exit status.

### `ccasim-bench`

Builds the root world's GPT and looks up the L1 entry for random physical
addresses in `[0, 4 GiB]`, printing the time each lookup took. Addresses
outside the protected space are reported as `invalid`.

```
ccasim-bench [--count N] [--seed SEED]
```

- `--count`: number of lookups (default 5000).
- `--seed`: seed for the random addresses.

## Library use

Building a granule protection table and querying it:

```python
from ccasim.constants import PgsSize, PpsSize
from ccasim.gpt import GranuleProtectionTable, base_address

table = GranuleProtectionTable(PpsSize.SIZE_4GB, PgsSize.SIZE_4K)
for index in range(4):
    table.init_pas_region(base_address(index), 0x40000000, index)
table.init_l0()
table.init_l1()

print(hex(table.check_pas_gpi(0x40001000)))  # 0x9999999999999999, the whole L1 entry
print(table.gpi_of(0xC0000000))              # Gpi.REALM
```

Regions 0 to 3 get the root, non-secure, secure and realm GPI in that
order, all granule-mapped. Overlapping, misaligned or out-of-range regions,
and lookups outside the protected space, raise `ccasim.gpt.GptError`.

Managing realms:

```python
from ccasim.realm import RealmMonitor

with RealmMonitor() as monitor:
    victim = monitor.create("victim", ["victim"], 4096, 4096, False)
    attacker = monitor.create("attacker", ["attacker"], 4096, 0, True)
    print(monitor.attempt_malicious_access(attacker))
```

`attempt_malicious_access` returns `(target_id, private_leaked,
shared_readable)`; private memory is stored encrypted, so the private read
does not leak the realm's data. `start` forks a process for a realm and
returns its pid, `stop` terminates it, and `destroy` stops it, removes its
shared memory and forgets it. Leaving the `with` block destroys every realm.

Tracking world memory:

```python
from ccasim.memory import MemoryManager
from ccasim.world import WorldType

memory = MemoryManager()
block = memory.allocate(WorldType.NORMAL, 4096)
memory.free(WorldType.NORMAL, block)
```

Errors raise `ccasim.memory.AllocationError`.

## Limitations

- The package does not ship `./realm_bmk/run.sh` or
  `./benchmark/realmvm.sh`; `realm_world` and `benchmark_realm_world` only
  run such a script if one exists in the current directory.
- Starting realms needs `fork()`, so `RealmMonitor.start` works on POSIX
  systems only.
- The GPT is a data structure in memory; nothing enforces it on real
  memory accesses.