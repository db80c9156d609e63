#!/usr/bin/env python3

# patchinfer - Patchwise inference on large volumes
#
# Copyright (c) 2026 - now
# patchinfer contributors

"""Run patchwise inference on a 3D HDF5 dataset and write the result
to another HDF5 file.

Example::

    patchinfer model.pts raw.h5 --inkey raw --patch-size 256 --overlap 16 \\
        --model-input-layout NCHW --output-dtype uint8
"""

import argparse
import logging
import os
import sys
from typing import Optional, Sequence

import h5py
import numpy as np

from patchinfer.inference import InferenceConfig, InferenceExecutor, Volume

logger = logging.getLogger('patchinferlog')


def get_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Patchwise inference from and to HDF5 files.')
    parser.add_argument('model', help='Path to the model file (.pts or .pt)')
    parser.add_argument('inpath', help='Path to the HDF5 input file')
    parser.add_argument('--inkey', default='raw', help='Name of the input dataset (z, y, x)')
    parser.add_argument('--outpath', default=None, help='Output file. Default: next to the input file')
    parser.add_argument('--outkey', default='out', help='Name of the output dataset')
    parser.add_argument('--out-shape', type=int, nargs=3, default=None, metavar=('Z', 'Y', 'X'),
                        help='Output volume shape. Default: same as the input shape')
    parser.add_argument('--normalization', default=None,
                        help='TorchScript source file defining normalize(x)')
    parser.add_argument('--denormalization', default=None,
                        help='TorchScript source file defining denormalize(x)')
    parser.add_argument('--current-layout', default='NDHW')
    parser.add_argument('--final-layout', default='NDHW')
    parser.add_argument('--model-input-layout', default='NDHW')
    parser.add_argument('--model-output-layout', default='NDHW')
    parser.add_argument('--model-input-dtype', default='float32')
    parser.add_argument('--model-output-dtype', default='float32')
    parser.add_argument('--output-dtype', default='float32')
    parser.add_argument('--patch-size', type=int, default=0, help='Patch size along x (0: no patching)')
    parser.add_argument('--overlap', type=int, default=0, help='Patch overlap along x')
    parser.add_argument('--disable-cuda', action='store_true', help='Disable CUDA')
    parser.add_argument('-v', '--verbose', action='store_true', help='Show progress')
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = get_parser().parse_args(argv)

    inpath = os.path.expanduser(args.inpath)
    outpath = args.outpath
    if outpath is None:
        r, e = os.path.splitext(inpath)
        outpath = f'{r}_out{e}'

    logger.info(f'Loading input from {inpath}[{args.inkey}]...')
    with h5py.File(inpath, 'r') as infile:
        inp = infile[args.inkey][()]
    logger.info(f'Input: shape={inp.shape}, dtype={inp.dtype}')
    if inp.ndim != 3:
        logger.error(f'Expected a 3D (z, y, x) input dataset, got shape {inp.shape}.')
        return 1

    input_volume = Volume.from_shape(inp.shape)
    output_volume = input_volume if args.out_shape is None else Volume.from_shape(args.out_shape)
    config = InferenceConfig(
        input_volume=input_volume,
        output_volume=output_volume,
        current_layout=args.current_layout,
        final_layout=args.final_layout,
        model_input_dtype=args.model_input_dtype,
        model_output_dtype=args.model_output_dtype,
        model_input_layout=args.model_input_layout,
        model_output_layout=args.model_output_layout,
        output_dtype=args.output_dtype,
        patch_size=args.patch_size,
        patch_overlap=args.overlap,
    )
    executor = InferenceExecutor(
        model=args.model,
        normalization=args.normalization,
        denormalization=args.denormalization,
        device='cpu' if args.disable_cuda else None,
        verbose=args.verbose,
    )
    logger.info('Predicting...')
    out = executor.process(inp, config)
    if out is None:
        logger.error('Inference failed, no output was written.')
        return 1

    out_np: np.ndarray = out.numpy().reshape(output_volume.shape)
    logger.info(f'Output: shape={out_np.shape}, dtype={out_np.dtype}')
    logger.info(f'Writing output to {outpath}[{args.outkey}]...')
    with h5py.File(outpath, 'w') as outfile:
        outfile.create_dataset(args.outkey, data=out_np)
    logger.info('Done.')
    return 0


if __name__ == '__main__':
    sys.exit(main())
