"""CLI test fixtures"""

import sys

import pytest
from loguru import logger


@pytest.fixture(autouse=True)
def restore_logging():
    """Commands point loguru at the runner's captured stderr; put the default sink back and silence adfmd again afterwards."""
    yield
    logger.remove()
    logger.add(sys.stderr)
    logger.disable("adfmd")
