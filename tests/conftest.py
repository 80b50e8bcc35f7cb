import os

import pytest


@pytest.fixture()
def sample_bytes() -> bytes:
    """Compressible content with a known prefix."""
    return b"fileproc sample content\n" * 200


@pytest.fixture()
def random_bytes() -> bytes:
    """Incompressible content."""
    return os.urandom(4096)
