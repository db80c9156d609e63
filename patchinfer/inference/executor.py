# patchinfer - Patchwise inference on large volumes
#
# Copyright (c) 2026 - now
# patchinfer contributors

import dataclasses
import logging
import os
import time
import traceback
import zipfile
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

import numpy as np
import torch
from torch import nn
from tqdm import tqdm

from patchinfer.inference.dtypes import DTypeLike, SUPPORTED_DTYPES, as_dtype, convert_dtype, to_host
from patchinfer.inference.layout import change_layout, check_compatible, check_layout
from patchinfer.inference.planner import PatchPlanner
from patchinfer.inference.stitching import allocate_output, stitch_patch
from patchinfer.inference.volume import Volume

logger = logging.getLogger('patchinferlog')

# Alias for type hinting
Transform = Callable[[torch.Tensor], torch.Tensor]

_SUPPORTED_NUMPY_DTYPES = {str(d).partition('.')[-1] for d in SUPPORTED_DTYPES}

# Generic errors raised by torch operators inside the model, e.g. IndexError
#  for out of bounds indexing or NotImplementedError for missing kernels
ENGINE_ERRORS = (RuntimeError, IndexError, ValueError, TypeError, NotImplementedError)


@dataclass
class InferenceConfig:
    """Per-call configuration of :py:meth:`InferenceExecutor.process`.

    The input is always interpreted as a ``(1, z, y, x)`` tensor of extent
    ``input_volume`` whose dimensions have the roles given by
    ``current_layout``. It is split into patches along its last dimension
    (``x``), so the role ``current_layout[3]`` has to be present in
    ``final_layout`` as well."""
    input_volume: Volume
    output_volume: Volume
    current_layout: str = 'NDHW'
    final_layout: str = 'NDHW'
    model_input_dtype: DTypeLike = torch.float32
    model_output_dtype: DTypeLike = torch.float32
    model_input_layout: str = 'NDHW'
    model_output_layout: str = 'NDHW'
    output_dtype: DTypeLike = torch.float32
    patch_size: int = 0
    patch_overlap: int = 0

    @property
    def patched_role(self) -> str:
        return self.current_layout[3]


def load_model(path: str, device: torch.device) -> nn.Module:
    """Load a serialized TorchScript (.pts) or pickled PyTorch (.pt) model."""
    path = os.path.expanduser(path)
    if not os.path.isfile(path):
        raise ValueError(f'Model path {path} not found.')
    # TorchScript serialization can be identified by checking if
    #  it's a zip file. Pickled Python models are not zip files.
    if zipfile.is_zipfile(path):
        return torch.jit.load(path, map_location=device)
    return torch.load(path, map_location=device, weights_only=False)


def load_hook(path: str, method: str) -> Transform:
    """Compile a TorchScript source file and return its function ``method``.

    The file is expected to define e.g. ``def normalize(x: Tensor) -> Tensor``."""
    path = os.path.expanduser(path)
    with open(path) as f:
        source = f.read()
    cu = torch.jit.CompilationUnit(source)
    return getattr(cu, method)


class InferenceExecutor:
    """Run a model over a large volume patch by patch.

    The input volume is split along its ``x`` axis into overlapping patches
    (see :py:class:`patchinfer.inference.planner.PatchPlanner`). Each patch is
    converted to the model's input dtype and layout, optionally normalized,
    fed into the model, optionally denormalized, converted back to the final
    layout and stitched into a single output volume, discarding the overlap.

    Args:
        model: The inference engine. Either a ``torch.nn.Module`` (or any
            callable mapping a tensor to a tensor) or a path to a serialized
            TorchScript module (.pts) or pickled PyTorch module (.pt),
            which is loaded and mapped to ``device``.
        normalization: Optional transform applied to each input patch (in
            model layout) before inference. Either a callable or a path to
            a TorchScript source file defining ``normalize(x)``.
        denormalization: Optional transform applied to each raw model output
            before it is converted back. Either a callable or a path to a
            TorchScript source file defining ``denormalize(x)``.
        device: Device to run the inference on. Can be a ``torch.device`` or
            a string like ``'cpu'``, ``'cuda:0'`` etc.
            If not specified (``None``), available GPUs are automatically used;
            the CPU is used as a fallback if no GPUs can be found.
        verbose: If ``True``, show a progress bar over the patches and report
            inference speed.

    Examples:
        >>> executor = InferenceExecutor(nn.Identity(), device='cpu')
        >>> inp = np.arange(2 * 3 * 10, dtype=np.uint8)
        >>> out = executor.process(
        ...     inp, input_volume=Volume(10, 3, 2), output_volume=Volume(10, 3, 2),
        ...     output_dtype='uint8', patch_size=6, patch_overlap=1)
        >>> assert np.all(out.numpy() == inp)
    """
    def __init__(
            self,
            model: Union[nn.Module, Transform, str],
            normalization: Optional[Union[Transform, str]] = None,
            denormalization: Optional[Union[Transform, str]] = None,
            device: Optional[Union[torch.device, str]] = None,
            verbose: bool = False,
    ):
        if device is None:
            device = torch.device('cuda' if torch.cuda.is_available() else 'cpu')
            logger.info(f'Running on device {device}')
        elif isinstance(device, str):
            device = torch.device(device)
        self.device = device
        self.verbose = verbose

        if isinstance(model, str):
            self.model_name = model
            try:
                model = load_model(model, device)
            except (ValueError, RuntimeError, OSError) as e:
                logger.error(f'Error while loading model \'{self.model_name}\': {e}')
                model = None
        else:
            self.model_name = type(model).__name__
        if isinstance(model, nn.Module):
            model.eval()
            model.to(device)
        self.model = model

        self._normalization_requested = normalization is not None
        self._denormalization_requested = denormalization is not None
        self.normalize = self._setup_hook(normalization, 'normalize')
        self.denormalize = self._setup_hook(denormalization, 'denormalize')

    @staticmethod
    def _setup_hook(hook: Optional[Union[Transform, str]], method: str) -> Optional[Transform]:
        if not isinstance(hook, str):
            return hook
        try:
            return load_hook(hook, method)
        except (RuntimeError, OSError, AttributeError) as e:
            logger.error(f'Error while loading {method} module \'{hook}\': {e}')
            return None

    def validate(
            self,
            config: InferenceConfig,
            inp: Optional[Union[np.ndarray, torch.Tensor]] = None
    ) -> List[str]:
        """Check the executor setup and ``config`` (and ``inp``, if given).

        Returns:
            A list of all problems that were found. It is empty if
            :py:meth:`process` can run with this configuration."""
        problems = []
        if self.model is None:
            problems.append('no model loaded.')
        if self._normalization_requested and self.normalize is None:
            problems.append('no normalization module present.')
        if self._denormalization_requested and self.denormalize is None:
            problems.append('no denormalization module present.')

        for current, target in [
            (config.current_layout, config.model_input_layout),
            (config.model_output_layout, config.final_layout),
        ]:
            try:
                check_compatible(current, target)
            except ValueError as e:
                problems.append(str(e))
        try:
            check_layout(config.current_layout)
            check_layout(config.final_layout)
            if config.final_layout.find(config.patched_role) < 1:
                problems.append(
                    f'Patched role {config.patched_role!r} has to be a spatial '
                    f'dimension of the final layout {config.final_layout!r}.'
                )
        except ValueError:
            pass  # Already reported above

        for name in ['model_input_dtype', 'model_output_dtype', 'output_dtype']:
            try:
                as_dtype(getattr(config, name))
            except ValueError as e:
                problems.append(f'{name}: {e}')

        for name in ['input_volume', 'output_volume']:
            volume = tuple(getattr(config, name))
            if len(volume) != 3 or min(volume) <= 0:
                problems.append(f'{name} {volume} has to have 3 positive extents (x, y, z).')

        patch_size, overlap = config.patch_size, config.patch_overlap
        if patch_size < 0 or overlap < 0:
            problems.append(f'patch_size ({patch_size}) and patch_overlap ({overlap}) must not be negative.')
        elif patch_size != 0 and patch_size <= 2 * overlap:
            problems.append(
                f'patch_size ({patch_size}) has to be larger than 2 * patch_overlap ({2 * overlap}).'
            )

        if inp is not None:
            if isinstance(inp, torch.Tensor):
                supported = inp.dtype in SUPPORTED_DTYPES
            else:
                supported = np.dtype(inp.dtype).name in _SUPPORTED_NUMPY_DTYPES
            if not supported:
                problems.append(f'Input element type {inp.dtype} is not supported.')
            numel = int(np.prod(inp.shape))
            required = int(np.prod(tuple(config.input_volume)))
            if numel != required:
                problems.append(
                    f'Input has {numel} elements, but input_volume '
                    f'{tuple(config.input_volume)} requires {required}.'
                )
        return problems

    def process(
            self,
            inp: Union[np.ndarray, torch.Tensor],
            config: Optional[InferenceConfig] = None,
            **kwargs
    ) -> Optional[torch.Tensor]:
        """Run the model on ``inp`` patch by patch.

        Args:
            inp: Input data with ``input_volume.numel`` elements, either flat
                or shaped ``(z, y, x)`` / ``(1, z, y, x)``. Can be an
                ``np.ndarray`` or a ``torch.Tensor`` on any device.
                It is not modified.
            config: Configuration of this call.
            **kwargs: Fields of :py:class:`InferenceConfig`. If ``config``
                is given, they override its values, otherwise they
                define the configuration.

        Returns:
            Flat CPU tensor of ``output_volume.numel`` elements of type
            ``output_dtype`` in ``final_layout`` order, or ``None`` if the
            configuration is invalid or the model failed.
        """
        if config is None:
            config = InferenceConfig(**kwargs)
        elif kwargs:
            config = dataclasses.replace(config, **kwargs)

        problems = self.validate(config, inp)
        if problems:
            for problem in problems:
                logger.error(f'Invalid inference setup: {problem}')
            return None
        config = dataclasses.replace(
            config,
            input_volume=Volume(*config.input_volume),
            output_volume=Volume(*config.output_volume),
        )

        try:
            return self._process_patches(self._wrap_input(inp, config.input_volume), config)
        except torch.jit.Error as e:
            logger.error(f'Error (torch.jit.Error) while running model \'{self.model_name}\'')
            logger.error(f'  {e}')
            logger.error(f'  {traceback.format_exc()}')
        except ENGINE_ERRORS as e:
            logger.error(f'Error ({type(e).__name__}) while running model \'{self.model_name}\'')
            logger.error(f'  {e}')
        return None

    @staticmethod
    def _wrap_input(inp: Union[np.ndarray, torch.Tensor], input_volume: Volume) -> torch.Tensor:
        """View the caller's buffer as a ``(1, z, y, x)`` tensor."""
        inp = torch.as_tensor(inp)
        if inp.dtype not in SUPPORTED_DTYPES:
            raise RuntimeError(f'Input element type {inp.dtype} is not supported.')
        if inp.device.type == 'cuda':
            # Make sure that all work that produces the input has finished
            torch.cuda.synchronize(inp.device)
        return inp.reshape(input_volume.batched_shape)

    @torch.no_grad()
    def _process_patches(self, inp: torch.Tensor, config: InferenceConfig) -> torch.Tensor:
        model_input_dtype = as_dtype(config.model_input_dtype)
        model_output_dtype = as_dtype(config.model_output_dtype)
        out = allocate_output(config.output_volume, as_dtype(config.output_dtype))

        planner = PatchPlanner(config.input_volume.x, config.patch_size, config.patch_overlap)
        num_patches = len(planner)
        logger.debug(
            f'Processing {num_patches} patch(es) of size {planner.patch_size} '
            f'with overlap {planner.overlap} along axis {config.patched_role!r}.'
        )
        if self.verbose:
            start = time.time()
        pbar = tqdm(planner, 'Predicting', total=num_patches, disable=not self.verbose, dynamic_ncols=True)
        for geometry in pbar:
            logger.debug(f'Patch {geometry}')
            inp_patch = inp[..., geometry.start_pixel:geometry.end_pixel]
            inp_patch = convert_dtype(inp_patch, model_input_dtype).to(self.device)
            inp_patch = change_layout(inp_patch, config.current_layout, config.model_input_layout)

            if self.normalize is not None:
                inp_patch = self.normalize(inp_patch)
            result = self.model(inp_patch)
            if self.denormalize is not None:
                result = self.denormalize(result)
            if not isinstance(result, torch.Tensor):
                raise RuntimeError(f'Model output has to be a tensor, got {type(result).__name__}.')

            if result.dtype != model_output_dtype:
                result = convert_dtype(result, model_output_dtype)
            result = change_layout(result, config.model_output_layout, config.final_layout)
            result = to_host(result)

            stitch_patch(
                result, out, config.output_volume, config.final_layout,
                config.patched_role, geometry
            )

        # Surface asynchronous device errors here instead of in later calls
        if self.device.type == 'cuda':
            torch.cuda.synchronize(self.device)
        if self.verbose:
            dtime = time.time() - start
            speed = inp.numel() / dtime / 1e6
            logger.info(f'Inference speed: {speed:.2f} MVox/s, time: {dtime:.2f}.')
        return out
