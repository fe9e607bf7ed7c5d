import os
import tempfile
from datetime import date
from pathlib import Path
from uuid import uuid4

import pytest

TEST_DB_FILE = Path(tempfile.gettempdir()) / f"test_asset_lifecycle_{uuid4().hex}.db"
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB_FILE.as_posix()}"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ALGORITHM"] = "HS256"
os.environ["SYNC_API_KEY"] = "test-sync-key"
os.environ.setdefault("DB_BOOTSTRAP_MODE", "off")

from app.core.auth import CurrentUser, sync_rate_limiter  # noqa: E402
from app.database.base import Base  # noqa: E402
from app.database.session import SessionLocal, engine  # noqa: E402
from app.models import Asset, AssetHistoryEvent, AssetLifecycleCycle  # noqa: E402,F401
from app.services.asset_lifecycle import register_asset  # noqa: E402

TODAY = date(2025, 1, 15)


@pytest.fixture(autouse=True)
def reset_database():
    engine.dispose()
    if TEST_DB_FILE.exists():
        TEST_DB_FILE.unlink()
    Base.metadata.create_all(bind=engine)
    sync_rate_limiter.reset()
    try:
        yield
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
        if TEST_DB_FILE.exists():
            TEST_DB_FILE.unlink()


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def operator():
    return CurrentUser(id="user-1", email="operador@malta.local", name="Operador Teste", role="authenticated")


@pytest.fixture
def make_asset(db_session):
    def _make(asset_code="1234", *, registered_on=date(2025, 1, 1), **extra) -> Asset:
        payload = {
            "asset_code": asset_code,
            "equipment_name": "Betoneira 400L",
            "manufacturer": "Menegotti",
            "effective_registration_date": registered_on,
            **extra,
        }
        return register_asset(db_session, payload, today=TODAY)

    return _make


@pytest.fixture
def history_of(db_session):
    def _history(asset: Asset) -> list[AssetHistoryEvent]:
        return (
            db_session.query(AssetHistoryEvent)
            .filter(AssetHistoryEvent.pat_id == asset.id)
            .order_by(AssetHistoryEvent.id.asc())
            .all()
        )

    return _history
