import math

import pytest

from patchinfer.inference.planner import PatchGeometry, PatchPlanner


def _expected_num_patches(total, patch_size, overlap):
    if total <= patch_size:
        return 1
    first = patch_size - overlap
    remaining = max(0, total - 2 * first)
    return 2 + math.ceil(remaining / (patch_size - 2 * overlap))


def test_example_sequence():
    patches = PatchPlanner(100, patch_size=40, overlap=4).plan()
    assert patches == [
        PatchGeometry(start_pixel_valid=0, start_pixel=0, patch_size=40, patch_size_valid=36),
        PatchGeometry(start_pixel_valid=36, start_pixel=32, patch_size=40, patch_size_valid=32),
        PatchGeometry(start_pixel_valid=68, start_pixel=64, patch_size=36, patch_size_valid=32),
    ]
    assert sum(p.patch_size_valid for p in patches) == 100


@pytest.mark.parametrize('total', [1, 2, 7, 39, 40, 41, 76, 77, 100, 257])
@pytest.mark.parametrize('patch_size, overlap', [(1, 0), (3, 1), (5, 2), (16, 0), (40, 4), (40, 19)])
def test_valid_regions_partition_axis(total, patch_size, overlap):
    planner = PatchPlanner(total, patch_size=patch_size, overlap=overlap)
    patches = list(planner)
    covered = []
    for p in patches:
        assert p.start_pixel >= 0
        assert p.end_pixel <= total
        assert p.patch_size <= patch_size
        assert p.start_pixel <= p.start_pixel_valid
        assert p.end_pixel_valid <= p.end_pixel
        covered.extend(range(p.start_pixel_valid, p.end_pixel_valid))
    assert covered == list(range(total))
    assert len(patches) == _expected_num_patches(total, patch_size, overlap)


@pytest.mark.parametrize('total, patch_size', [(10, 10), (10, 64), (1, 5)])
def test_single_patch_if_it_fits(total, patch_size):
    patches = PatchPlanner(total, patch_size=patch_size, overlap=2).plan()
    assert patches == [PatchGeometry(0, 0, total, total)]


@pytest.mark.parametrize('overlap', [0, 3, 1000])
def test_no_patching(overlap):
    patches = PatchPlanner(123, patch_size=0, overlap=overlap).plan()
    assert patches == [PatchGeometry(0, 0, 123, 123)]


def test_trimming_per_position():
    first, *middle, last = PatchPlanner(50, patch_size=12, overlap=3)
    assert first.valid_offset == 0
    assert first.patch_size_valid == 12 - 3
    for p in middle:
        assert p.valid_offset == 3
        assert p.patch_size_valid == 12 - 6
    assert last.valid_offset == 3
    assert last.end_pixel == 50
    assert last.patch_size_valid == last.patch_size - 3


def test_no_negative_offsets_at_boundary():
    # Smallest patch size for the given overlap: the second patch starts
    # right after the discarded context of the first one.
    for total in range(8, 40):
        for p in PatchPlanner(total, patch_size=7, overlap=3):
            assert p.start_pixel >= 0
            assert p.valid_offset in (0, 3)


def test_restartable():
    planner = PatchPlanner(77, patch_size=20, overlap=5)
    assert list(planner) == list(planner)
    assert len(planner) == len(planner.plan())


def test_empty_axis():
    assert PatchPlanner(0, patch_size=0).plan() == []


@pytest.mark.parametrize('patch_size, overlap', [(8, 4), (8, 5), (1, 1)])
def test_patch_size_too_small(patch_size, overlap):
    with pytest.raises(ValueError):
        PatchPlanner(100, patch_size=patch_size, overlap=overlap)


def test_negative_arguments():
    with pytest.raises(ValueError):
        PatchPlanner(-1)
    with pytest.raises(ValueError):
        PatchPlanner(10, patch_size=-4)
