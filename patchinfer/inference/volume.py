# patchinfer - Patchwise inference on large volumes
#
# Copyright (c) 2026 - now
# patchinfer contributors

from typing import NamedTuple, Sequence, Tuple


class Volume(NamedTuple):
    """Extent of a 3D volume along its three named axes.

    ``x`` is the fastest varying axis (axis0), ``z`` the slowest (axis2).
    Tensors holding a volume are shaped ``(z, y, x)``, or ``(1, z, y, x)``
    with the singleton batch dimension prepended."""
    x: int
    y: int
    z: int

    @classmethod
    def from_shape(cls, shape: Sequence[int]) -> 'Volume':
        """Build a ``Volume`` from a ``(z, y, x)`` or ``(1, z, y, x)`` shape."""
        shape = tuple(int(s) for s in shape)
        if len(shape) == 4 and shape[0] == 1:
            shape = shape[1:]
        if len(shape) != 3:
            raise ValueError(f'Can\'t interpret shape {shape} as a (z, y, x) volume.')
        z, y, x = shape
        return cls(x=x, y=y, z=z)

    @property
    def shape(self) -> Tuple[int, int, int]:
        return self.z, self.y, self.x

    @property
    def batched_shape(self) -> Tuple[int, int, int, int]:
        return 1, self.z, self.y, self.x

    @property
    def numel(self) -> int:
        return self.x * self.y * self.z
