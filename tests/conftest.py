import os
import sys

import pytest


# Tests import `erp.*`, which requires the repo root on sys.path.
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from erp.db import connect, ensure_schema  # noqa: E402


@pytest.fixture
def conn():
    c = connect(":memory:")
    ensure_schema(c)
    yield c
    c.close()
