import logging

import pytest
import torch


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append(record)

    def messages(self, level=logging.ERROR):
        return [r.getMessage() for r in self.records if r.levelno == level]


@pytest.fixture
def log_handler():
    logger = logging.getLogger('patchinferlog')
    handler = ListHandler()
    logger.addHandler(handler)
    yield handler
    logger.removeHandler(handler)


@pytest.fixture
def volume_data():
    torch.manual_seed(0)
    return torch.rand(1, 3, 4, 50) * 10
