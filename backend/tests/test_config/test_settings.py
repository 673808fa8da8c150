import pytest
from pydantic import ValidationError

from logtree.config import Settings


def test_defaults():
    config = Settings(_env_file=None)
    assert config.AGGREGATION_FACTOR == 5
    assert config.NODE_STORE == "memory"
    assert config.SNIPPET_LENGTH == 10
    assert config.SUMMARY_MAX_LENGTH == 100


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("AGGREGATION_FACTOR", "3")
    monkeypatch.setenv("NODE_STORE", "sql")
    config = Settings(_env_file=None)
    assert config.AGGREGATION_FACTOR == 3
    assert config.NODE_STORE == "sql"


def test_postgres_url_uses_asyncpg_driver():
    config = Settings(_env_file=None, DATABASE_URL="postgresql://user:pw@db:5432/logtree")
    assert config.DATABASE_URL == "postgresql+asyncpg://user:pw@db:5432/logtree"


@pytest.mark.parametrize("overrides", [
    {"AGGREGATION_FACTOR": 1},
    {"NODE_STORE": "redis"},
    {"SUBSCRIBER_QUEUE_SIZE": 0},
    {"LOG_LEVEL": "verbose"},
])
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)


def test_log_level_is_case_insensitive(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    assert Settings(_env_file=None).LOG_LEVEL == "DEBUG"
