"""Root test configuration for stablehand tests."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from dotenv import load_dotenv

# Load test environment before any test module imports
load_dotenv(dotenv_path=Path(__file__).parent.parent / '.env.test')


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line('markers', 'unit: Unit tests (no Redis)')
    config.addinivalue_line(
        'markers', 'integration: Integration tests (requires Redis at REDIS_URL)'
    )


@pytest.fixture(autouse=True)
def process_title() -> Iterator[MagicMock]:
    """Keep workers from retitling the test process."""
    with patch('stablehand.core.worker.base.setproctitle') as fake:
        yield fake
