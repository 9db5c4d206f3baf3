import logging
from pathlib import Path

import pytest

BUILDS_DIR = Path(__file__).resolve().parent.parent / "build-files"


@pytest.fixture
def builds_dir():
    return BUILDS_DIR


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """CLI tests attach handlers bound to CliRunner streams; drop them afterwards."""
    yield
    logger = logging.getLogger("buildgraph")
    for h in list(logger.handlers):
        logger.removeHandler(h)
