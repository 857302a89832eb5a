"""
Pytest fixtures and configuration for plugin_bundle tests.
"""
import pytest
import shutil
from pathlib import Path
from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, create_engine, inspect
from plugin_bundle.context import PluginContext
from plugin_bundle.db.access import enable_transactional_ddl
from plugin_bundle.db.base_session import SessionLocal
from plugin_bundle.db.setup import initialize_database
from plugin_bundle.db.models import Integration, Plugin

FIXTURE_PLUGINS = Path(__file__).parent / "fixtures" / "plugins"


@pytest.fixture(scope="function")
def test_db_engine(tmp_path):
    """Create a test database engine with cleanup."""
    db_path = tmp_path / "test_plugin_bundle.sqlite3"
    engine = enable_transactional_ddl(create_engine(f"sqlite:///{db_path}"))

    initialize_database(engine, reset_tables=True)

    yield engine

    engine.dispose()


@pytest.fixture(scope="function")
def test_db_session(test_db_engine):
    """Create a test database session."""
    session = SessionLocal(bind=test_db_engine)
    yield session
    session.close()


@pytest.fixture
def plugin_context(test_db_engine):
    return PluginContext(engine=test_db_engine)


@pytest.fixture
def table_names(test_db_engine):
    """Callable returning the set of tables currently in the test database."""

    def _names():
        return set(inspect(test_db_engine).get_table_names())

    return _names


@pytest.fixture
def two_table_metadata():
    """plugin_a, and plugin_b referencing it."""
    metadata = MetaData()
    Table(
        "plugin_a",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("label", String(50), index=True),
    )
    Table(
        "plugin_b",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("a_id", Integer, ForeignKey("plugin_a.id")),
    )
    return metadata


@pytest.fixture
def sample_plugin():
    """A detached Plugin record with two integrations."""
    plugin = Plugin(
        id=7,
        name="Email Stats",
        description="Open and click tracking",
        is_missing=False,
        bundle="email_stats",
        version="1.0.0",
        author="Acme",
    )
    plugin.integrations.append(Integration(name="Mailer", is_published=True))
    plugin.integrations.append(Integration(name="Tracker"))
    return plugin


@pytest.fixture
def plugin_dir(tmp_path):
    """A plugin directory holding copies of the fixture bundles."""
    d = tmp_path / "plugins"
    d.mkdir()
    for name in ("email_stats.py", "no_schema.py"):
        shutil.copy(FIXTURE_PLUGINS / name, d / name)
    return d
