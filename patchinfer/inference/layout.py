# patchinfer - Patchwise inference on large volumes
#
# Copyright (c) 2026 - now
# patchinfer contributors

"""Conversion between named axis orderings ("layouts") of 4D tensors.

A layout is a string of 4 distinct role symbols, one per tensor dimension,
e.g. ``'NCHW'`` or ``'NWHC'``. Two tensors with the same data but different
layouts are related by an axis permutation, which is what this module
computes and applies."""

from typing import List

import torch

NDIM = 4


def check_layout(layout: str) -> None:
    """Raise a ``ValueError`` if ``layout`` is not a valid 4D layout label."""
    if not isinstance(layout, str) or len(layout) != NDIM:
        raise ValueError(f'Layout {layout!r} must be a string of {NDIM} role symbols.')
    if len(set(layout)) != NDIM:
        raise ValueError(f'Layout {layout!r} contains duplicate role symbols.')


def check_compatible(current_layout: str, target_layout: str) -> None:
    """Raise a ``ValueError`` if the two layouts don't describe the same roles."""
    check_layout(current_layout)
    check_layout(target_layout)
    if set(current_layout) != set(target_layout):
        raise ValueError(
            f'Layouts {current_layout!r} and {target_layout!r} don\'t share '
            f'the same set of axis roles.'
        )


def layout_permutation(current_layout: str, target_layout: str) -> List[int]:
    """Compute the permutation that turns ``current_layout`` into ``target_layout``.

    Element ``i`` of the result is the dimension index in ``current_layout``
    that ends up at dimension ``i`` of ``target_layout``, so the result can
    directly be passed to ``torch.Tensor.permute()``.

    >>> layout_permutation('NCHW', 'NHWC')
    [0, 2, 3, 1]
    """
    check_compatible(current_layout, target_layout)
    return [current_layout.index(role) for role in target_layout]


def change_layout(tensor: torch.Tensor, current_layout: str, target_layout: str) -> torch.Tensor:
    """Reorder the dimensions of ``tensor`` from ``current_layout`` to ``target_layout``.

    The result is made contiguous, so a copy is only materialized if the
    permutation is not the identity."""
    if tensor.dim() != NDIM:
        raise ValueError(f'Expected a {NDIM}D tensor, got shape {tuple(tensor.shape)}.')
    permutation = layout_permutation(current_layout, target_layout)
    if permutation == list(range(NDIM)):
        return tensor
    return tensor.permute(*permutation).contiguous()


def target_dim(current_layout: str, target_layout: str, source_dim: int) -> int:
    """Return the dimension of ``target_layout`` that holds the role found at
    dimension ``source_dim`` of ``current_layout``."""
    return role_dim(target_layout, current_layout[source_dim])


def role_dim(layout: str, role: str) -> int:
    """Return the dimension index of ``role`` within ``layout``."""
    check_layout(layout)
    if role not in layout:
        raise ValueError(f'Role {role!r} is not part of layout {layout!r}.')
    return layout.index(role)
