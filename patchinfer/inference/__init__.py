"""Patchwise inference on volumes that are too large to be processed at once.

The input volume is split along one axis into overlapping patches. Every
patch is fed into the model independently and only the valid (non-overlapping)
region of each patch output is written into the final output volume.

Important note: This module assumes that the model preserves the extent of
its input along the patched axis. The other two axes may differ between
input and output volume.
"""

from .volume import Volume
from .planner import PatchPlanner, PatchGeometry
from .executor import InferenceExecutor, InferenceConfig
