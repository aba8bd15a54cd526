import pytest

from ccasim import constants as c
from ccasim.constants import Gpi, MapType, PgsSize, PpsSize


@pytest.mark.parametrize(
    "pps,t",
    [
        (PpsSize.SIZE_4GB, 32),
        (PpsSize.SIZE_64GB, 36),
        (PpsSize.SIZE_1TB, 40),
        (PpsSize.SIZE_4TB, 42),
        (PpsSize.SIZE_16TB, 44),
        (PpsSize.SIZE_256TB, 48),
        (PpsSize.SIZE_4PB, 52),
    ],
)
def test_pps_to_t(pps, t):
    assert c.pps_to_t(pps) == t


@pytest.mark.parametrize(
    "pgs,p",
    [(PgsSize.SIZE_4K, 12), (PgsSize.SIZE_64K, 16), (PgsSize.SIZE_16K, 14)],
)
def test_pgs_to_p(pgs, p):
    assert c.pgs_to_p(pgs) == p


def test_illegal_pps_raises():
    with pytest.raises(ValueError):
        c.pps_to_t(7)


def test_illegal_pgs_raises():
    with pytest.raises(ValueError):
        c.pgs_to_p(3)


def test_l0_any_block_descriptor():
    assert c.l0_block_desc(Gpi.ANY) == 0xF1


@pytest.mark.parametrize("gpi", list(Gpi))
def test_l0_block_desc_round_trip(gpi):
    desc = c.l0_block_desc(gpi)
    assert c.l0_block_gpi(desc) == gpi
    assert c.l0_type(desc) == c.GPT_L0_TYPE_BLK_DESC


@pytest.mark.parametrize("address", [0, 0x1000, 0x7F12_3456_7000])
def test_l0_table_desc_round_trip(address):
    desc = c.l0_table_desc(address)
    assert c.l0_type(desc) == c.GPT_L0_TYPE_TBL_DESC
    assert c.l0_table_addr(desc) == address


@pytest.mark.parametrize("pps", list(PpsSize))
def test_l0_regions_cover_pps(pps):
    t = c.pps_to_t(pps)
    assert c.l0_region_count(t) * c.GPT_L0GPTSZ_ACTUAL_SIZE == c.pps_actual_size(t)
    assert c.l0_table_size(t) == c.l0_region_count(t) * 8


def test_l0_width_is_zero_when_t_small():
    assert c.l0_idx_width(c.GPT_S_VAL) == 0
    assert c.l0_region_count(c.GPT_S_VAL) == 1


@pytest.mark.parametrize("pgs", list(PgsSize))
def test_l1_table_covers_l0_region(pgs):
    p = c.pgs_to_p(pgs)
    granules = c.l1_entry_count(p) * 16
    assert granules * c.pgs_actual_size(p) == c.GPT_L0GPTSZ_ACTUAL_SIZE
    assert c.l1_table_size(p) == c.l1_entry_count(p) * 8
    assert c.l1_idx_mask(p) == c.l1_entry_count(p) - 1


def test_build_l1_desc_any_is_all_ones():
    assert c.build_l1_desc(Gpi.ANY) == c.ULONG_MAX


@pytest.mark.parametrize("gpi", list(Gpi))
def test_build_l1_desc_every_nibble(gpi):
    desc = c.build_l1_desc(gpi)
    assert all((desc >> (4 * n)) & 0xF == gpi for n in range(16))
    assert desc <= c.ULONG_MAX


def test_alignment_checks():
    assert c.is_l0_aligned(c.SIZE_1GB)
    assert not c.is_l0_aligned(c.SIZE_1GB + c.SIZE_4KB)
    assert c.is_l1_aligned(12, c.SIZE_4KB * 3)
    assert not c.is_l1_aligned(12, c.SIZE_4KB + 1)


def test_l0_idx_of_gigabyte_boundaries():
    assert c.l0_idx(c.SIZE_1GB - 1) == 0
    assert c.l0_idx(c.SIZE_1GB) == 1
    assert c.l0_idx(c.SIZE_4GB - 1) == 3


def test_pas_attr_fields():
    attrs = (MapType.GRANULE << 4) | Gpi.REALM
    assert c.pas_attr_map_type(attrs) == MapType.GRANULE
    assert c.pas_attr_gpi(attrs) == Gpi.REALM
    assert c.pas_attr_map_type(Gpi.ROOT) == MapType.BLOCK


def test_l1_gpi_idx_stays_in_entry():
    p = 12
    for pa in (0, c.SIZE_4KB, c.SIZE_4KB * 15, c.SIZE_4KB * 16, c.SIZE_1GB + c.SIZE_4KB * 5):
        idx = c.l1_gpi_idx(p, pa)
        assert 0 <= idx <= 15
        assert idx == (pa // c.pgs_actual_size(p)) % 16


def test_l1_idx_shift_groups_sixteen_granules():
    p = 12
    assert 1 << c.l1_idx_shift(p) == 16 * c.pgs_actual_size(p)