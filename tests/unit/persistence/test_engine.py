"""Unit tests for sqlreflex.persistence.engine module."""

from pathlib import Path

import pytest

from sqlreflex.config.models import DatabaseConfig
from sqlreflex.persistence.engine import MYSQL_UTC_INIT_COMMAND, connect_args_for, open_engine


class TestOpenEngine:
    """Test open_engine."""

    async def test_opens_sqlite_engine(self, tmp_path: Path) -> None:
        config = DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}")
        engine = open_engine(config)
        try:
            assert engine.dialect.name == "sqlite"
            assert engine.echo is False
        finally:
            await engine.dispose()

    async def test_echo_is_passed_through(self, tmp_path: Path) -> None:
        config = DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}", echo=True)
        engine = open_engine(config)
        try:
            assert engine.echo is True
        finally:
            await engine.dispose()


class TestConnectArgs:
    """Test per-backend connect arguments."""

    @pytest.mark.parametrize(
        "url", ["mysql+aiomysql://app:pw@db/events", "mysql+asyncmy://app@db/events"]
    )
    def test_mysql_session_is_utc(self, url: str) -> None:
        assert connect_args_for(url) == {"init_command": MYSQL_UTC_INIT_COMMAND}
        assert "+00:00" in MYSQL_UTC_INIT_COMMAND

    @pytest.mark.parametrize(
        "url", ["sqlite+aiosqlite:///reflex.db", "postgresql+asyncpg://app@db/events"]
    )
    def test_other_backends_untouched(self, url: str) -> None:
        assert connect_args_for(url) == {}
