import itertools

import pytest
import torch

from patchinfer.inference.layout import (
    change_layout, check_compatible, layout_permutation, role_dim, target_dim
)


def test_permutation():
    assert layout_permutation('NCHW', 'NCHW') == [0, 1, 2, 3]
    assert layout_permutation('NCHW', 'NHWC') == [0, 2, 3, 1]
    assert layout_permutation('NHWC', 'NCHW') == [0, 3, 1, 2]


def test_change_layout_moves_values():
    t = torch.arange(2 * 3 * 4).reshape(1, 2, 3, 4)
    out = change_layout(t, 'NCHW', 'NWCH')
    assert out.shape == (1, 4, 2, 3)
    assert out.is_contiguous()
    for c, h, w in itertools.product(range(2), range(3), range(4)):
        assert out[0, w, c, h] == t[0, c, h, w]


@pytest.mark.parametrize('target', [''.join(p) for p in itertools.permutations('NDHW')])
def test_round_trip(target):
    t = torch.rand(1, 3, 5, 7)
    there = change_layout(t, 'NDHW', target)
    back = change_layout(there, target, 'NDHW')
    assert back.shape == t.shape
    assert torch.equal(back, t)


def test_identity_is_not_copied():
    t = torch.rand(1, 2, 3, 4)
    assert change_layout(t, 'NCHW', 'NCHW') is t


def test_target_dim():
    # The role at source dim 3 ('W') sits at dim 1 of the target
    assert target_dim('NDHW', 'NWDH', 3) == 1
    assert target_dim('NDHW', 'NDHW', 3) == 3
    assert role_dim('NCHW', 'H') == 2


@pytest.mark.parametrize('current, target', [
    ('NCHW', 'NCHD'),  # different roles
    ('NCHW', 'NCH'),  # wrong length
    ('NCCW', 'NCCW'),  # duplicate role
])
def test_invalid_layouts(current, target):
    with pytest.raises(ValueError):
        check_compatible(current, target)
    with pytest.raises(ValueError):
        layout_permutation(current, target)


def test_change_layout_requires_4d():
    with pytest.raises(ValueError):
        change_layout(torch.rand(2, 3, 4), 'NCHW', 'NHWC')


def test_unknown_role():
    with pytest.raises(ValueError):
        role_dim('NCHW', 'D')
