"""Alembic migration tests: the revision chain matches the ORM schema."""

import inspect
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory

from civicquest.db import models  # noqa: F401
from civicquest.db.base import Base

ROOT = Path(__file__).resolve().parents[1]


def _scripts() -> ScriptDirectory:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "alembic"))
    return ScriptDirectory.from_config(cfg)


def test_single_head() -> None:
    assert _scripts().get_heads() == ["001_gamification_core"]


def test_upgrade_creates_every_model_table() -> None:
    script = _scripts().get_revision("001_gamification_core")
    upgrade_sql = inspect.getsource(script.module.upgrade)
    downgrade_sql = inspect.getsource(script.module.downgrade)

    for table in Base.metadata.tables:
        assert f"CREATE TABLE IF NOT EXISTS {table} (" in upgrade_sql
        assert f"DROP TABLE IF EXISTS {table}" in downgrade_sql
