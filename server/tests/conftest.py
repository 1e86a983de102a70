"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import os
from typing import Callable, Generator, Sequence
from unittest.mock import Mock

import pytest
from redis import Redis
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from import_orchestrator.core.config import Settings
from import_orchestrator.core.db import create_db_engine, create_session_factory, session_scope
from import_orchestrator.core.metrics import BatchMetricsService, MetricsRegistry
from import_orchestrator.models import Base, Mapping, MappingField, Work
from import_orchestrator.services.mapping_engine import mapping_cache
from import_orchestrator.services.work_repository import WorkRepository

# PostgreSQL when provided; otherwise a throwaway SQLite file per test
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


@pytest.fixture
def db_engine(tmp_path) -> Generator[Engine, None, None]:
    """Create an engine with every table created for one test."""
    url = TEST_DATABASE_URL or f"sqlite:///{tmp_path / 'orchestrator.db'}"
    engine = create_db_engine(url, timeout_seconds=30.0)
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(db_engine)


@pytest.fixture(autouse=True)
def clear_mapping_cache() -> Generator[None, None, None]:
    """Compiled mappings are process-wide; every test starts from an empty cache."""
    mapping_cache.clear()
    yield
    mapping_cache.clear()


@pytest.fixture
def redis_mock() -> Mock:
    redis = Mock(spec=Redis)
    redis.hgetall.return_value = {}
    return redis


@pytest.fixture
def metrics(redis_mock: Mock) -> BatchMetricsService:
    return BatchMetricsService(MetricsRegistry(redis_mock, namespace="test_metrics"))


@pytest.fixture
def settings() -> Settings:
    return Settings(
        default_chunk_size=100,
        default_skip_limit=10,
        import_mapping_id="mapping_1",
        poll_interval_seconds=0.05,
        reaper_threshold_seconds=3600,
    )


# Domain data ---------------------------------------------------------------------


@pytest.fixture
def render_line() -> Callable[..., str]:
    """Render a line for the default mapping: name@0,10 then amount@10,8."""

    def _render(name: str, amount: str = "") -> str:
        return f"{name:<10}{amount:>8}"

    return _render


@pytest.fixture
def seed_mapping(session_factory: sessionmaker[Session]) -> Callable[..., None]:
    """Insert a mapping; defaults to ``mapping_1`` with name and amount fields."""

    def _seed(mapping_id: str = "mapping_1", fields: Sequence[dict] | None = None) -> None:
        fields = fields or [
            {"property": "name", "type": "STRING", "offset": 0, "length": 10, "mandatory": "Y"},
            {"property": "amount", "type": "BIGDECIMAL", "offset": 10, "length": 8},
        ]
        with session_scope(session_factory) as session:
            mapping = Mapping(id=mapping_id, mapping_type="FIXED", description="test mapping")
            mapping.fields = [MappingField(iden=index + 1, **field) for index, field in enumerate(fields)]
            session.add(mapping)

    return _seed


@pytest.fixture
def seed_work(session_factory: sessionmaker[Session]) -> Callable[..., None]:
    def _seed(file_iden: str = "FID", pipeline_key: str = "dbImport", sort_order: int = 0) -> None:
        with session_scope(session_factory) as session:
            session.add(Work(file_iden=file_iden, pipeline_key=pipeline_key, sort_order=sort_order))

    return _seed


@pytest.fixture
def create_pending(session_factory: sessionmaker[Session]) -> Callable[..., int]:
    """Insert a PENDING work status with its import lines and return its id."""

    def _create(work_iden: str = "FID.V1", lines: Sequence[str | None] = ()) -> int:
        with session_scope(session_factory) as session:
            repository = WorkRepository(session)
            work_status = repository.create_work_status(work_iden)
            repository.add_import_lines(work_status.id, lines)
            return work_status.id

    return _create
