"""
Test configuration for combparse tests
"""

import logging
import sys
from pathlib import Path

import pytest

# Add the source directory to Python path
src_root = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_root))


@pytest.fixture
def debug_log(caplog):
    """Capture the library's DEBUG records"""
    caplog.set_level(logging.DEBUG, logger="combparse")
    return caplog
