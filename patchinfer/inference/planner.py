# patchinfer - Patchwise inference on large volumes
#
# Copyright (c) 2026 - now
# patchinfer contributors

"""Geometry of overlapping patches along one axis."""

from dataclasses import dataclass
from typing import Iterator, List


@dataclass(frozen=True)
class PatchGeometry:
    """Position of one patch along the patched axis.

    Attributes:
        start_pixel_valid: Start of the valid (authoritative) region in
            absolute coordinates of the full axis.
        start_pixel: Start of the input slice that is fed into the model,
            including leading overlap.
        patch_size: Length of the input slice.
        patch_size_valid: Length of the valid region within the slice.
    """
    start_pixel_valid: int
    start_pixel: int
    patch_size: int
    patch_size_valid: int

    @property
    def valid_offset(self) -> int:
        """Offset of the valid region relative to the start of the patch."""
        return self.start_pixel_valid - self.start_pixel

    @property
    def end_pixel(self) -> int:
        return self.start_pixel + self.patch_size

    @property
    def end_pixel_valid(self) -> int:
        return self.start_pixel_valid + self.patch_size_valid


class PatchPlanner:
    """Plan overlapping patches that cover ``[0, total_length)`` exactly once.

    Every patch except the first is extended by ``overlap`` pixels of context
    before its valid region and every patch except the last is extended by
    ``overlap`` pixels after it. The context is passed to the model but
    discarded from its output, so the valid regions of all patches partition
    the axis without gaps or duplicates.

    Iterating over a ``PatchPlanner`` lazily yields :py:class:`PatchGeometry`
    objects and can be repeated any number of times.

    Args:
        total_length: Length of the axis to be covered.
        patch_size: Requested patch length (including overlap). ``0``
            disables patching, i.e. the whole axis is processed at once.
        overlap: Context length that is discarded on each inner side of a
            patch. Must satisfy ``patch_size > 2 * overlap`` if patching
            is enabled.

    Examples:
        >>> [(p.start_pixel, p.patch_size, p.patch_size_valid)
        ...  for p in PatchPlanner(10, patch_size=6, overlap=1)]
        [(0, 6, 5), (4, 6, 5)]
    """
    def __init__(self, total_length: int, patch_size: int = 0, overlap: int = 0):
        if total_length < 0:
            raise ValueError(f'total_length must not be negative, got {total_length}.')
        if patch_size < 0 or overlap < 0:
            raise ValueError(
                f'patch_size ({patch_size}) and overlap ({overlap}) must not be negative.'
            )
        if patch_size == 0:
            patch_size = total_length
        elif patch_size <= 2 * overlap:
            raise ValueError(
                f'patch_size ({patch_size}) has to be larger than 2 * overlap ({2 * overlap}).'
            )
        self.total_length = total_length
        self.patch_size = patch_size
        self.overlap = overlap

    def __iter__(self) -> Iterator[PatchGeometry]:
        num_pixels = self.total_length
        overlap = self.overlap
        start_pixel_valid = 0
        while start_pixel_valid < num_pixels:
            if start_pixel_valid == 0 and num_pixels <= self.patch_size:
                # The requested patch size is large enough, no patching necessary
                start_pixel = 0
                patch_size = num_pixels
                patch_size_valid = patch_size
            elif start_pixel_valid == 0:
                # The first patch is only padded at its end
                start_pixel = 0
                patch_size = self.patch_size
                patch_size_valid = patch_size - overlap
            elif num_pixels - (start_pixel_valid - overlap) <= self.patch_size:
                # The last patch is only padded at its start
                start_pixel = start_pixel_valid - overlap
                patch_size = num_pixels - start_pixel
                patch_size_valid = patch_size - overlap
            else:
                start_pixel = start_pixel_valid - overlap
                patch_size = self.patch_size
                patch_size_valid = patch_size - 2 * overlap
            assert start_pixel >= 0 and patch_size_valid > 0, (start_pixel, patch_size_valid)
            yield PatchGeometry(
                start_pixel_valid=start_pixel_valid,
                start_pixel=start_pixel,
                patch_size=patch_size,
                patch_size_valid=patch_size_valid,
            )
            start_pixel_valid += patch_size_valid

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def plan(self) -> List[PatchGeometry]:
        """Return all patches as a list."""
        return list(self)
