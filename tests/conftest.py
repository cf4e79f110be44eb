from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


import pytest
from loguru import logger


@pytest.fixture(autouse=True)
def _restore_logging():
    yield
    # The CLI reconfigures the global logger; put the default sink back.
    logger.remove()
    logger.add(sys.stderr)
