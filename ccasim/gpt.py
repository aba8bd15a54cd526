"""A software Granule Protection Table built from physical address space regions."""

from dataclasses import dataclass
from typing import List, Optional

from .constants import (
    GPT_L0_TYPE_BLK_DESC,
    GPT_L0_TYPE_TBL_DESC,
    GPT_L0GPTSZ,
    GPT_L0GPTSZ_ACTUAL_SIZE,
    GPT_L0_IDX_SHIFT,
    GPT_S_VAL,
    PAS_REGION_COUNT,
    SIZE_1GB,
    ULONG_MAX,
    Gpi,
    MapType,
    PgsSize,
    PpsSize,
    build_l1_desc,
    is_l0_aligned,
    is_l1_aligned,
    l0_block_desc,
    l0_block_gpi,
    l0_idx,
    l0_region_count,
    l0_table_addr,
    l0_table_desc,
    l0_type,
    l1_entry_count,
    l1_gpi_idx,
    l1_idx_mask,
    l1_idx_shift,
    pas_attr_gpi,
    pas_attr_map_type,
    pgs_actual_size,
    pgs_to_p,
    pps_actual_size,
    pps_to_t,
)


class GptError(Exception):
    """Raised when the table cannot be configured, built or walked."""


@dataclass
class PasRegion:
    """A physical address space region with its mapping attributes."""

    pas_base: int
    size: int
    attr: int


_DEFAULT_GPI = (Gpi.ROOT, Gpi.NS, Gpi.SECURE, Gpi.REALM)


def check_pas_overlap(base_1, size_1, base_2, size_2):
    """True when the two ranges share at least one byte."""
    return (base_1 + size_1) > base_2 and (base_2 + size_2) > base_1


def base_address(index):
    """Base address of the ``index``-th 1GB PAS region."""
    return max(index, 0) * SIZE_1GB


def default_attr(index):
    """Granule-mapped attribute for region ``index``: root, NS, secure, realm."""
    if not 0 <= index < len(_DEFAULT_GPI):
        raise GptError(f"No default attribute for PAS[{index}]")
    return (MapType.GRANULE << 4) | _DEFAULT_GPI[index]


class GranuleProtectionTable:
    """Two-level table mapping physical addresses to granule protection information."""

    def __init__(self, pps=PpsSize.SIZE_4GB, pgs=PgsSize.SIZE_4K):
        try:
            self.t = pps_to_t(pps)
            self.p = pgs_to_p(pgs)
        except ValueError as exc:
            raise GptError(str(exc)) from None
        self.pps = PpsSize(pps)
        self.pgs = PgsSize(pgs)
        self.l0: List[int] = [0] * l0_region_count(self.t)
        self.l1_tables: List[List[int]] = []
        self.regions: List[Optional[PasRegion]] = [None] * PAS_REGION_COUNT
        self.l1_index_mask = 0
        self.l1_entry_count = 0

    # -- PAS regions --------------------------------------------------------

    def init_pas_region(self, base, size, index):
        """Record region ``index`` with its default attribute."""
        if not 0 <= index < len(self.regions):
            raise GptError(f"PAS index {index} out of range")
        region = PasRegion(base, size, default_attr(index))
        self.regions[index] = region
        print(
            f"[GPT] PAS[{index}] region base: 0x{region.pas_base:x}, "
            f"size: 0x{region.size:x}, ATTR: 0x{region.attr:x}"
        )
        return region

    # -- L0 -----------------------------------------------------------------

    def init_l0(self):
        """Point every L0 entry at an ANY block descriptor."""
        if not 0 <= int(self.pps) <= 0x6:
            print(f"[GPT] Illegal PPS value: {int(self.pps)}")
            raise GptError("L0 GPT initialization param illegal")
        desc = l0_block_desc(Gpi.ANY)
        self.l0 = [desc] * l0_region_count(self.t)
        print("[GPT] L0 table initialized")
        print(f"      L0 region number: {len(self.l0)}")
        print(f"      L0 descriptor: 0x{desc:x}")

    # -- L1 -----------------------------------------------------------------

    def _regions(self):
        for idx, region in enumerate(self.regions):
            if region is None:
                raise GptError(f"PAS[{idx}] is not initialized")
            yield idx, region

    def _previous_pas_here(self, index, count):
        l0_base = GPT_L0GPTSZ_ACTUAL_SIZE * index
        return any(
            check_pas_overlap(l0_base, GPT_L0GPTSZ_ACTUAL_SIZE, r.pas_base, r.size)
            for r in self.regions[:count]
        )

    def l1_region_count(self):
        """Validate the regions and return how many L1 tables they need."""
        regions = list(self._regions())
        total = 0
        current = 0
        for idx, region in regions:
            base, size = region.pas_base, region.size
            if ULONG_MAX - base < size:
                raise GptError(f"Address overflow in PAS[{idx}]")
            if base + size > pps_actual_size(self.t):
                raise GptError(f"PAS[{idx}] size invalid")
            for later, other in regions[idx + 1:]:
                if check_pas_overlap(base, size, other.pas_base, other.size):
                    raise GptError(f"PAS[{idx}] overlaps with PAS[{later}]")

            first_l0 = l0_idx(base)
            last_l0 = l0_idx(base + size - 1)
            for i in range(first_l0, last_l0 + 1):
                desc = self.l0[i]
                if not (l0_type(desc) == GPT_L0_TYPE_BLK_DESC and l0_block_gpi(desc) == Gpi.ANY):
                    raise GptError(f"PAS[{idx}] overlaps with previous L0[{i}]!")

            map_type = pas_attr_map_type(region.attr)
            if map_type == MapType.BLOCK:
                if not is_l0_aligned(base) or not is_l0_aligned(size):
                    raise GptError(f"PAS[{idx}] is not block-aligned")
                continue

            if not is_l1_aligned(self.p, base) or not is_l1_aligned(self.p, size):
                raise GptError(f"PAS[{idx}] is not granule-aligned")
            current = last_l0 - first_l0 + 1
            if current > 1 and self._previous_pas_here(last_l0, idx):
                current -= 1
            if self._previous_pas_here(first_l0, idx):
                current -= 1
            total += current
        return total

    def _l1_index(self, pa):
        return (pa >> l1_idx_shift(self.p)) & self.l1_index_mask

    def _generate_block_desc(self, region):
        desc = l0_block_desc(pas_attr_gpi(region.attr))
        for idx in range(l0_idx(region.pas_base), l0_idx(region.pas_base + region.size)):
            self.l0[idx] = desc
            print(
                f"[GPT] L0 entry (BLOCK) index[{idx}] GPI: 0x{l0_block_gpi(desc):x} "
                f"Desc: 0x{desc:x}"
            )

    def _new_l1_table(self):
        table = [build_l1_desc(Gpi.ANY)] * l1_entry_count(self.p)
        self.l1_tables.append(table)
        return len(self.l1_tables) - 1

    @staticmethod
    def _l1_end_pa(cur_pa, end_pa):
        cur_idx = l0_idx(cur_pa)
        if cur_idx == l0_idx(end_pa):
            return end_pa
        return (cur_idx + 1) << GPT_L0_IDX_SHIFT

    def _fill_l1(self, table, first, last, gpi):
        desc = build_l1_desc(gpi)
        mask = (ULONG_MAX << (l1_gpi_idx(self.p, first) << 2)) & ULONG_MAX
        last_index = self._l1_index(last)
        for i in range(self._l1_index(first), last_index + 1):
            if i == last_index:
                mask &= mask >> ((15 - l1_gpi_idx(self.p, last)) << 2)
            table[i] = (table[i] & ~mask & ULONG_MAX) | (desc & mask)
            self.l1_entry_count += 1
            mask = ULONG_MAX
        return last + pgs_actual_size(self.p)

    def _generate_table_desc(self, region):
        end_pa = region.pas_base + region.size
        gpi = pas_attr_gpi(region.attr)
        cur_pa = region.pas_base
        granule = pgs_actual_size(self.p)
        for idx in range(l0_idx(region.pas_base), l0_idx(end_pa - 1) + 1):
            if l0_type(self.l0[idx]) == GPT_L0_TYPE_TBL_DESC:
                number = l0_table_addr(self.l0[idx])
            else:
                number = self._new_l1_table()
                self.l0[idx] = l0_table_desc(number)
            print(
                f"[GPT] L0 entry (TABLE) index[{idx}] ==> L1 table {number} "
                f"L0 TLB DESC: 0x{self.l0[idx]:x}"
            )
            next_pa = self._l1_end_pa(cur_pa, end_pa)
            self._fill_l1(self.l1_tables[number], cur_pa, next_pa - granule, gpi)
            cur_pa = next_pa

    def init_l1(self):
        """Build block and table descriptors for every region; return the L1 table count."""
        count = self.l1_region_count()
        print(f"[GPT] Total L1 table count: 0x{count:x}")
        self.l1_index_mask = l1_idx_mask(self.p)
        print("[GPT]========== GPT Configuration ==========")
        print(f"     PPS/T:            0x{int(self.pps):x}/{self.t}")
        print(f"     PGS/P:            0x{int(self.pgs):x}/{self.p}")
        print(f"     L0GPTSZ/S:        0x{GPT_L0GPTSZ:x}/{GPT_S_VAL}")
        print(f"     PAS region count: {PAS_REGION_COUNT}")
        for idx, region in self._regions():
            block = pas_attr_map_type(region.attr) == MapType.BLOCK
            kind = "BLOCK" if block else "TABLE"
            print(f"[GPT] ========== GPT L0 {kind} Desc Generating ==========")
            print(
                f"[GPT] PAS[{idx}] base: 0x{region.pas_base:x} size: 0x{region.size:x} "
                f"GPI: 0x{pas_attr_gpi(region.attr):x} "
                f"MapType: 0x{pas_attr_map_type(region.attr):x}"
            )
            if block:
                self._generate_block_desc(region)
            else:
                self._generate_table_desc(region)
        return count

    # -- lookup -------------------------------------------------------------

    def _l0_desc(self, address):
        index = l0_idx(address)
        if not 0 <= index < len(self.l0):
            raise GptError(f"Address 0x{address:x} is outside the protected space")
        return self.l0[index]

    def check_pas_gpi(self, address):
        """Return the raw L1 entry that covers ``address``."""
        desc = self._l0_desc(address)
        if l0_type(desc) != GPT_L0_TYPE_TBL_DESC:
            raise GptError(f"Address 0x{address:x} is not mapped by an L1 table")
        return self.l1_tables[l0_table_addr(desc)][self._l1_index(address)]

    def gpi_of(self, address):
        """Return the GPI that governs ``address``."""
        desc = self._l0_desc(address)
        if l0_type(desc) != GPT_L0_TYPE_TBL_DESC:
            return Gpi(l0_block_gpi(desc))
        entry = self.check_pas_gpi(address)
        return Gpi((entry >> (l1_gpi_idx(self.p, address) << 2)) & 0xF)