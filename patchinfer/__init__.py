__all__ = ['InferenceExecutor', 'InferenceConfig', 'Volume']

__version__ = '0.1.0'

import logging

from patchinfer.logger import logger_setup

logger = logging.getLogger('patchinferlog')

logger_setup()

from patchinfer.inference import InferenceExecutor, InferenceConfig, Volume
