"""
pytest configuration for SENIK-ADMIN tests.

Adds src directory to Python path for imports and resets shared state
between tests.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))


@pytest.fixture(autouse=True)
def _reset_logging_context():
    """Context variables leak between tests run in the same thread."""
    from core.logging.context import clear_log_context
    from core.logging.message_context import clear_message_context

    clear_log_context()
    clear_message_context()
    yield
    clear_log_context()
    clear_message_context()
