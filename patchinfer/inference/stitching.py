# patchinfer - Patchwise inference on large volumes
#
# Copyright (c) 2026 - now
# patchinfer contributors

from typing import Tuple

import torch

from patchinfer.inference.dtypes import clamp_cast
from patchinfer.inference.layout import role_dim
from patchinfer.inference.planner import PatchGeometry
from patchinfer.inference.volume import Volume


def allocate_output(out_volume: Volume, dtype: torch.dtype) -> torch.Tensor:
    """Allocate the flat host buffer that all patches are stitched into."""
    return torch.empty(out_volume.numel, dtype=dtype, device='cpu')


def patch_slices(
        patched_dim: int,
        out_volume: Volume,
        geometry: PatchGeometry,
) -> Tuple[Tuple[slice, ...], Tuple[slice, ...]]:
    """Compute the (destination, source) slices of one patch's valid region.

    Both slices index 4D ``(1, z, y, x)``-shaped tensors. Along
    ``patched_dim`` the destination covers
    ``[start_pixel_valid, start_pixel_valid + patch_size_valid)`` and the
    source is shifted by the patch's ``start_pixel``. All other dimensions
    are covered entirely."""
    if patched_dim not in (1, 2, 3):
        raise ValueError(f'patched_dim has to be one of the spatial dims 1, 2, 3, got {patched_dim}.')
    dst = [slice(0, 1)] + [slice(0, s) for s in out_volume.shape]
    src = list(dst)
    dst[patched_dim] = slice(geometry.start_pixel_valid, geometry.end_pixel_valid)
    src[patched_dim] = slice(
        geometry.valid_offset, geometry.valid_offset + geometry.patch_size_valid
    )
    return tuple(dst), tuple(src)


def stitch_patch(
        patch_out: torch.Tensor,
        out: torch.Tensor,
        out_volume: Volume,
        final_layout: str,
        patched_role: str,
        geometry: PatchGeometry,
) -> None:
    """Copy the valid region of a patch output into the flat output buffer.

    Args:
        patch_out: Output of the model for one patch, already in
            ``final_layout`` and on the same device as ``out``.
        out: Flat output buffer of ``out_volume.numel`` elements.
            Values are cast into its dtype with saturation.
        out_volume: Extent of the full output volume.
        final_layout: Layout of ``patch_out`` and of the output volume.
        patched_role: Role symbol of the axis along which the input was
            split into patches.
        geometry: Geometry of the patch.
    """
    patched_dim = role_dim(final_layout, patched_role)
    dst, src = patch_slices(patched_dim, out_volume, geometry)
    region = patch_out[src]
    expected = tuple(s.stop - s.start for s in dst)
    if tuple(region.shape) != expected:
        raise RuntimeError(
            f'Patch output of shape {tuple(patch_out.shape)} does not cover the '
            f'region {expected} required by {geometry} in output volume {out_volume}.'
        )
    out_view = out.view(out_volume.batched_shape)
    out_view[dst] = clamp_cast(region, out.dtype)
