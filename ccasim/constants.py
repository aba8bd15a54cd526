"""Granule Protection Table constants and descriptor arithmetic."""

from enum import IntEnum

ERR = -1
TEST = False

PAS_REGION_COUNT = 4
WORLD_COUNT = 4

SIZE_4KB = 0x1000
SIZE_16KB = 4 * SIZE_4KB
SIZE_1GB = 0x40000000
SIZE_4GB = 0x100000000
PPS_REGION_BASE = 0x100000000
ULONG_MAX = 0xFFFFFFFFFFFFFFFF
SZ_2M = 0x00200000

L1_GPT_MAX_NUM = 0xFFFFFF

GPT_GPI_VAL_MASK = 0xF

GPT_L0_TYPE_TBL_DESC = 3
GPT_L0_TYPE_BLK_DESC = 1
GPT_L0_BLK_DESC_GPI_MASK = 0xF
GPT_L0_BLK_DESC_GPI_SHIFT = 4
GPT_L0_TYPE_SHIFT = 0
GPT_L0_TYPE_MASK = 0xF

GPT_L0GPTSZ = 0
GPT_S_VAL = GPT_L0GPTSZ + 30
GPT_L0_IDX_SHIFT = GPT_S_VAL
GPT_L0GPTSZ_ACTUAL_SIZE = 1 << GPT_S_VAL
GPT_L0_REGION_SIZE = 1 << GPT_L0_IDX_SHIFT

GPT_PAS_ATTR_MAP_TYPE_SHIFT = 4
GPT_PAS_ATTR_MAP_TYPE_MASK = 0x1
GPT_PAS_ATTR_GPI_SHIFT = 0
GPT_PAS_ATTR_GPI_MASK = 0xF

GPT_L0_TBL_DESC_L1ADDR_SHIFT = 4

GPT_L1_GPI_IDX_MASK = 0xF


class Gpi(IntEnum):
    """Granule protection information values."""

    NO_ACCESS = 0x0
    SECURE = 0x8
    NS = 0x9
    ROOT = 0xA
    REALM = 0xB
    ANY = 0xF


class PpsSize(IntEnum):
    """Protected physical address space size encodings."""

    SIZE_4GB = 0x0
    SIZE_64GB = 0x1
    SIZE_1TB = 0x2
    SIZE_4TB = 0x3
    SIZE_16TB = 0x4
    SIZE_256TB = 0x5
    SIZE_4PB = 0x6


class PgsSize(IntEnum):
    """Physical granule size encodings."""

    SIZE_4K = 0x0
    SIZE_64K = 0x1
    SIZE_16K = 0x2


class MapType(IntEnum):
    """How a PAS region is mapped: whole L0 blocks or L1 granules."""

    BLOCK = 0x0
    GRANULE = 0x1


_PPS_T = {
    PpsSize.SIZE_4GB: 32,
    PpsSize.SIZE_64GB: 36,
    PpsSize.SIZE_1TB: 40,
    PpsSize.SIZE_4TB: 42,
    PpsSize.SIZE_16TB: 44,
    PpsSize.SIZE_256TB: 48,
    PpsSize.SIZE_4PB: 52,
}

_PGS_P = {
    PgsSize.SIZE_4K: 12,
    PgsSize.SIZE_64K: 16,
    PgsSize.SIZE_16K: 14,
}


def pps_to_t(pps):
    """Return the address width T for a PPS encoding."""
    try:
        return _PPS_T[PpsSize(pps)]
    except ValueError:
        raise ValueError(f"Illegal PPS value: {pps}") from None


def pgs_to_p(pgs):
    """Return the granule shift P for a PGS encoding."""
    try:
        return _PGS_P[PgsSize(pgs)]
    except ValueError:
        raise ValueError(f"Illegal PGS value: {pgs}") from None


def l0_idx_width(t):
    """Width of the L0 index field, zero when T does not exceed S."""
    return t - GPT_S_VAL if t > GPT_S_VAL else 0


def l0_idx_mask(t):
    return 0x3FFFFF >> (22 - l0_idx_width(t))


def l0_region_count(t):
    return l0_idx_mask(t) + 1


def l0_table_size(t):
    """Size of the L0 table in bytes."""
    return l0_region_count(t) << 3


def pps_actual_size(t):
    return 1 << t


def pgs_actual_size(p):
    return 1 << p


def l0_block_desc(gpi):
    """Build an L0 block descriptor carrying ``gpi``."""
    return GPT_L0_TYPE_BLK_DESC | ((gpi & GPT_L0_BLK_DESC_GPI_MASK) << GPT_L0_BLK_DESC_GPI_SHIFT)


def l0_block_gpi(desc):
    return (desc >> GPT_L0_BLK_DESC_GPI_SHIFT) & GPT_L0_BLK_DESC_GPI_MASK


def l0_type(desc):
    return (desc >> GPT_L0_TYPE_SHIFT) & GPT_L0_TYPE_MASK


def l0_idx(pa):
    """L0 table index of a physical address."""
    return pa >> GPT_L0_IDX_SHIFT


def is_l0_aligned(pa):
    return (pa & (GPT_L0_REGION_SIZE - 1)) == 0


def is_l1_aligned(p, pa):
    return (pa & (pgs_actual_size(p) - 1)) == 0


def pas_attr_map_type(attrs):
    return (attrs >> GPT_PAS_ATTR_MAP_TYPE_SHIFT) & GPT_PAS_ATTR_MAP_TYPE_MASK


def pas_attr_gpi(attrs):
    return (attrs >> GPT_PAS_ATTR_GPI_SHIFT) & GPT_PAS_ATTR_GPI_MASK


def l0_table_desc(address):
    """Build an L0 table descriptor pointing at an L1 table address."""
    return (GPT_L0_TYPE_TBL_DESC | (address << GPT_L0_TBL_DESC_L1ADDR_SHIFT)) & ULONG_MAX


def l0_table_addr(desc):
    """Recover the L1 table address from an L0 table descriptor."""
    return desc >> GPT_L0_TBL_DESC_L1ADDR_SHIFT


def l1_idx_width(p):
    return (GPT_S_VAL - 1) - (p + 3)


def l1_idx_mask(p):
    return 0x7FFFFF >> (23 - l1_idx_width(p))


def l1_entry_count(p):
    """Number of 64-bit entries in one L1 table."""
    return l1_idx_mask(p) + 1


def l1_table_size(p):
    return l1_entry_count(p) << 3


def l1_idx_shift(p):
    return p + 4


def l1_gpi_idx(p, pa):
    """Position of the GPI nibble for ``pa`` within its L1 entry."""
    return (pa >> p) & GPT_L1_GPI_IDX_MASK


def build_l1_desc(gpi):
    """Build an L1 entry whose sixteen GPI nibbles all equal ``gpi``."""
    desc = (gpi | (gpi << 4)) & 0xFF
    desc |= desc << 8
    desc |= desc << 16
    desc |= desc << 32
    return desc & ULONG_MAX