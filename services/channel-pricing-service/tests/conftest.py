import os
import sys
from pathlib import Path

import pytest

# Ensure `services/channel-pricing-service` is on sys.path so `import channel_pricing`
# works when running tests from the monorepo root.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

# Must be set before channel_pricing.main / channel_pricing.events are imported.
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["EVENTS_ENABLED"] = "0"

from channel_pricing.db import make_engine  # noqa: E402
from channel_pricing.store import CatalogStore  # noqa: E402


@pytest.fixture
def store() -> CatalogStore:
    return CatalogStore(make_engine("sqlite+pysqlite:///:memory:"), company_id="hotel-1")
