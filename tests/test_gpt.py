import pytest

from ccasim.constants import (
    SIZE_1GB,
    SIZE_4GB,
    SIZE_4KB,
    ULONG_MAX,
    Gpi,
    MapType,
    build_l1_desc,
    l0_block_desc,
    l1_entry_count,
    pas_attr_gpi,
    pas_attr_map_type,
)
from ccasim.gpt import (
    GptError,
    GranuleProtectionTable,
    PasRegion,
    base_address,
    check_pas_overlap,
    default_attr,
)

EXPECTED = [Gpi.ROOT, Gpi.NS, Gpi.SECURE, Gpi.REALM]


def _table():
    table = GranuleProtectionTable()
    for i in range(4):
        table.init_pas_region(base_address(i), SIZE_1GB, i)
    table.init_l0()
    return table


def test_check_pas_overlap():
    assert check_pas_overlap(0, 10, 5, 10)
    assert not check_pas_overlap(0, 10, 10, 10)
    assert check_pas_overlap(5, 1, 0, 10)


def test_base_address():
    assert base_address(0) == 0
    assert base_address(3) == 3 * SIZE_1GB
    assert base_address(-1) == 0


def test_default_attr():
    for i, gpi in enumerate(EXPECTED):
        attr = default_attr(i)
        assert pas_attr_gpi(attr) == gpi
        assert pas_attr_map_type(attr) == MapType.GRANULE
    with pytest.raises(GptError):
        default_attr(4)


def test_invalid_pps():
    with pytest.raises(GptError):
        GranuleProtectionTable(pps=7)


def test_init_l0():
    table = _table()
    assert len(table.l0) == 4
    assert all(desc == l0_block_desc(Gpi.ANY) for desc in table.l0)


def test_l1_region_count_default():
    assert _table().l1_region_count() == 4


def test_full_build_lookup():
    table = _table()
    assert table.init_l1() == 4
    assert len(table.l1_tables) == 4
    for i, gpi in enumerate(EXPECTED):
        addr = base_address(i) + 0x12345000
        assert table.gpi_of(addr) == gpi
        assert table.check_pas_gpi(addr) == build_l1_desc(gpi)
    assert table.l1_entry_count == 4 * l1_entry_count(12)


def test_shared_l0_region():
    table = GranuleProtectionTable()
    table.init_pas_region(0, SIZE_1GB, 0)
    table.init_pas_region(SIZE_1GB, SIZE_1GB, 1)
    table.init_pas_region(2 * SIZE_1GB, 3 * SIZE_4KB, 2)
    table.init_pas_region(2 * SIZE_1GB + 3 * SIZE_4KB, SIZE_1GB - 3 * SIZE_4KB, 3)
    table.init_l0()
    assert table.init_l1() == 3
    assert len(table.l1_tables) == 3
    assert table.gpi_of(2 * SIZE_1GB + 2 * SIZE_4KB) == Gpi.SECURE
    assert table.gpi_of(2 * SIZE_1GB + 3 * SIZE_4KB) == Gpi.REALM
    assert table.gpi_of(3 * SIZE_1GB) == Gpi.ANY


def test_unmapped_and_out_of_range_lookup():
    table = GranuleProtectionTable()
    table.init_l0()
    with pytest.raises(GptError):
        table.check_pas_gpi(0)
    with pytest.raises(GptError):
        table.gpi_of(SIZE_4GB)


def test_overlap_rejected():
    table = _table()
    table.init_pas_region(0, 2 * SIZE_1GB, 0)
    with pytest.raises(GptError, match="overlaps"):
        table.l1_region_count()


def test_misaligned_granule_rejected():
    table = _table()
    table.init_pas_region(3 * SIZE_1GB + 1, SIZE_4KB, 3)
    with pytest.raises(GptError, match="granule-aligned"):
        table.l1_region_count()


def test_region_beyond_pps_rejected():
    table = _table()
    table.init_pas_region(3 * SIZE_1GB, 2 * SIZE_1GB, 3)
    with pytest.raises(GptError, match="size invalid"):
        table.l1_region_count()


def test_address_overflow_rejected():
    table = _table()
    table.regions[0] = PasRegion(ULONG_MAX - 0xFFF, 0x2000, default_attr(0))
    with pytest.raises(GptError, match="overflow"):
        table.l1_region_count()


def test_block_mapping():
    table = _table()
    table.regions[3] = PasRegion(3 * SIZE_1GB, SIZE_1GB, (MapType.BLOCK << 4) | Gpi.REALM)
    assert table.init_l1() == 3
    assert table.l0[3] == l0_block_desc(Gpi.REALM)
    assert table.gpi_of(3 * SIZE_1GB + SIZE_4KB) == Gpi.REALM


def test_block_misaligned_rejected():
    table = _table()
    table.regions[3] = PasRegion(3 * SIZE_1GB, SIZE_4KB, (MapType.BLOCK << 4) | Gpi.REALM)
    with pytest.raises(GptError, match="block-aligned"):
        table.l1_region_count()


def test_uninitialised_region_rejected():
    table = GranuleProtectionTable()
    table.init_l0()
    with pytest.raises(GptError):
        table.l1_region_count()


def test_rebuild_detects_previous_mapping():
    table = _table()
    table.init_l1()
    with pytest.raises(GptError, match="previous L0"):
        table.l1_region_count()


def test_init_pas_region_index_out_of_range():
    table = GranuleProtectionTable()
    with pytest.raises(GptError):
        table.init_pas_region(0, SIZE_1GB, 4)