import os
import tempfile
from datetime import datetime
from decimal import Decimal

import pytest

os.environ.setdefault("LEDGER_DATA_DIR", tempfile.mkdtemp(prefix="ledger-tests-"))
os.environ.setdefault("LEDGER_TIMEZONE", "UTC")

from sqlalchemy.orm import Session  # noqa: E402

from database import Base, create_db_engine  # noqa: E402
from default_categories import ensure_defaults_seeded  # noqa: E402
from schemas import AccountIn  # noqa: E402
from services import AccountService  # noqa: E402


NOW = datetime(2024, 3, 15, 12, 0)


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def engine():
    eng = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        ensure_defaults_seeded(session)
        yield session


@pytest.fixture
def account(session):
    return AccountService(session).create(
        AccountIn(name="Cash", currency="usd", balance=Decimal("0"))
    )
