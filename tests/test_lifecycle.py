# tests/test_lifecycle.py
"""
Tests for the PluginBundleBase schema lifecycle: install, update, diff,
uninstall and drop, including the 1.x hook compatibility path.
"""
import dataclasses
import pytest
from unittest.mock import patch
from sqlalchemy import Column, Integer, MetaData, String, Table, inspect
from sqlalchemy.exc import OperationalError

from plugin_bundle.context import PluginContext
from plugin_bundle.db.schema_tool import DestructiveMigrationError, SchemaMigrationWarning
from plugin_bundle.db.setup import snapshot_schema
from plugin_bundle.interface import LegacyInstallable, LegacyUpdatable
from plugin_bundle.sdk import Addon, PluginBundleBase


class PlainBundle(PluginBundleBase):
    pass


class LegacyBundle(PluginBundleBase):
    installs = []
    updates = []

    @classmethod
    def on_install(cls, context):
        cls.installs.append(set(inspect(context.engine).get_table_names()))

    @classmethod
    def on_update(cls, addon, context):
        cls.updates.append((addon, context))


# Hooks written without @classmethod
class InstanceHookBundle(PluginBundleBase):
    calls = []

    def on_install(self, context):
        self.calls.append(("install", context))

    def on_update(self, addon, context):
        self.calls.append(("update", addon.bundle, context))


class StaticHookBundle(PluginBundleBase):
    calls = []

    @staticmethod
    def on_install(context):
        StaticHookBundle.calls.append(("install", context))


class NotCallableHookBundle(PluginBundleBase):
    on_install = "not a hook"


@pytest.fixture(autouse=True)
def reset_legacy_calls():
    LegacyBundle.installs = []
    LegacyBundle.updates = []
    InstanceHookBundle.calls = []
    StaticHookBundle.calls = []


def _columns(engine, table):
    return [c["name"] for c in inspect(engine).get_columns(table)]


def _plugin_a(*extra_columns, indexed_label=True):
    metadata = MetaData()
    Table(
        "plugin_a",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("label", String(50), index=indexed_label),
        *extra_columns,
    )
    return metadata


class TestCapabilities:
    def test_legacy_protocols_detected_on_class(self):
        assert isinstance(LegacyBundle, LegacyInstallable)
        assert isinstance(LegacyBundle, LegacyUpdatable)

    def test_base_class_has_no_legacy_hooks(self):
        assert not isinstance(PluginBundleBase, LegacyInstallable)
        assert not isinstance(PlainBundle, LegacyUpdatable)


class TestInstall:
    def test_install_creates_tables(self, plugin_context, sample_plugin, two_table_metadata, table_names):
        PlainBundle.on_plugin_install(sample_plugin, plugin_context, two_table_metadata)

        assert {"plugin_a", "plugin_b"} <= table_names()
        indexes = {i["name"] for i in inspect(plugin_context.engine).get_indexes("plugin_a")}
        assert "ix_plugin_a_label" in indexes

    def test_install_without_metadata_runs_nothing(self, plugin_context, sample_plugin, table_names):
        before = table_names()
        with patch.object(plugin_context.engine, "connect") as connect:
            PlainBundle.on_plugin_install(sample_plugin, plugin_context, None)
            assert PlainBundle.install_plugin_schema(MetaData(), plugin_context) == 0

        connect.assert_not_called()
        assert table_names() == before

    def test_legacy_install_hook_runs_first(self, plugin_context, sample_plugin, two_table_metadata, table_names):
        LegacyBundle.on_plugin_install(sample_plugin, plugin_context, two_table_metadata)

        assert len(LegacyBundle.installs) == 1
        assert "plugin_a" not in LegacyBundle.installs[0]
        assert "plugin_a" in table_names()

    def test_instance_method_hook_is_called(self, plugin_context, sample_plugin, two_table_metadata, table_names):
        assert isinstance(InstanceHookBundle, LegacyInstallable)

        InstanceHookBundle.on_plugin_install(sample_plugin, plugin_context, two_table_metadata)

        assert InstanceHookBundle.calls == [("install", plugin_context)]
        assert "plugin_a" in table_names()

    def test_staticmethod_hook_is_called(self, plugin_context, sample_plugin):
        StaticHookBundle.on_plugin_install(sample_plugin, plugin_context)

        assert StaticHookBundle.calls == [("install", plugin_context)]

    def test_non_callable_hook_fails_before_schema(self, plugin_context, sample_plugin, two_table_metadata, table_names):
        with pytest.raises(TypeError, match="NotCallableHookBundle.on_install"):
            NotCallableHookBundle.on_plugin_install(sample_plugin, plugin_context, two_table_metadata)

        assert "plugin_a" not in table_names()

    def test_second_create_failing_leaves_nothing_behind(
        self, test_db_engine, plugin_context, sample_plugin, two_table_metadata, table_names
    ):
        with test_db_engine.begin() as conn:
            conn.exec_driver_sql("CREATE TABLE plugin_b (id INTEGER)")

        with pytest.raises(OperationalError) as exc_info:
            PlainBundle.on_plugin_install(sample_plugin, plugin_context, two_table_metadata)

        assert "plugin_b" in exc_info.value.statement
        assert "already exists" in str(exc_info.value.orig)
        assert "plugin_a" not in table_names()

    def test_diff_engine_errors_propagate_unchanged(self, test_db_engine, sample_plugin, two_table_metadata):
        boom = ValueError("column 'label' has no type")

        class BrokenTool:
            def __init__(self, dialect):
                pass

            def get_create_schema_sql(self, metadata):
                raise boom

        context = PluginContext(engine=test_db_engine, schema_tool_factory=BrokenTool)

        with pytest.raises(ValueError) as exc_info:
            PlainBundle.on_plugin_install(sample_plugin, context, two_table_metadata)

        assert exc_info.value is boom


class TestUpdate:
    def test_update_never_changes_schema(self, plugin_context, sample_plugin, two_table_metadata, table_names):
        before = table_names()

        LegacyBundle.on_plugin_update(sample_plugin, plugin_context, two_table_metadata, None)
        PlainBundle.on_plugin_update(sample_plugin, plugin_context, two_table_metadata, None)

        assert table_names() == before

    def test_legacy_update_hook_gets_addon_view(self, plugin_context, sample_plugin):
        LegacyBundle.on_plugin_update(sample_plugin, plugin_context)

        assert len(LegacyBundle.updates) == 1
        addon, context = LegacyBundle.updates[0]
        assert isinstance(addon, Addon)
        assert context is plugin_context

    def test_instance_method_update_hook_is_called(self, plugin_context, sample_plugin):
        InstanceHookBundle.on_plugin_update(sample_plugin, plugin_context)

        assert InstanceHookBundle.calls == [("update", sample_plugin.bundle, plugin_context)]

    def test_plain_bundle_update_is_a_noop(self, plugin_context, sample_plugin):
        assert PlainBundle.on_plugin_update(sample_plugin, plugin_context) is None


class TestAddon:
    def test_copies_every_field(self, sample_plugin):
        addon = Addon.from_plugin(sample_plugin)

        assert addon.author == sample_plugin.author
        assert addon.bundle == sample_plugin.bundle
        assert addon.description == sample_plugin.description
        assert addon.id == sample_plugin.id
        assert addon.integrations == tuple(sample_plugin.integrations)
        assert addon.is_missing == sample_plugin.is_missing
        assert addon.name == sample_plugin.name
        assert addon.version == sample_plugin.version

    def test_is_immutable_and_independent(self, sample_plugin):
        addon = Addon.from_plugin(sample_plugin)

        with pytest.raises(dataclasses.FrozenInstanceError):
            addon.version = "9.9.9"

        sample_plugin.version = "2.0.0"
        assert addon.version == "1.0.0"
        assert Addon.from_plugin(sample_plugin) is not addon


class TestUpdatePluginSchema:
    def test_adds_missing_column(self, plugin_context):
        PlainBundle.install_plugin_schema(_plugin_a(), plugin_context)
        target = _plugin_a(Column("note", String(20)))
        installed = snapshot_schema(plugin_context.engine, ["plugin_a"])

        with pytest.warns(SchemaMigrationWarning):
            changes = PlainBundle.update_plugin_schema(target, installed, plugin_context)

        assert [c.sql for c in changes] == ["ALTER TABLE plugin_a ADD COLUMN note VARCHAR(20)"]
        assert _columns(plugin_context.engine, "plugin_a") == ["id", "label", "note"]

    def test_up_to_date_schema_applies_nothing(self, plugin_context):
        PlainBundle.install_plugin_schema(_plugin_a(), plugin_context)
        installed = snapshot_schema(plugin_context.engine, ["plugin_a"])

        assert PlainBundle.update_plugin_schema(_plugin_a(), installed, plugin_context) == []

    def test_refuses_destructive_diff_by_default(self, plugin_context):
        PlainBundle.install_plugin_schema(_plugin_a(Column("legacy_flag", Integer)), plugin_context)
        installed = snapshot_schema(plugin_context.engine, ["plugin_a"])
        target = _plugin_a(Column("note", String(20)))

        with pytest.warns(SchemaMigrationWarning):
            with pytest.raises(DestructiveMigrationError) as exc_info:
                PlainBundle.update_plugin_schema(target, installed, plugin_context)

        assert exc_info.value.statements == ["ALTER TABLE plugin_a DROP COLUMN legacy_flag"]
        # Nothing ran, not even the harmless ADD COLUMN
        assert _columns(plugin_context.engine, "plugin_a") == ["id", "label", "legacy_flag"]

    def test_destructive_diff_when_allowed(self, plugin_context):
        PlainBundle.install_plugin_schema(_plugin_a(), plugin_context)
        installed = snapshot_schema(plugin_context.engine, ["plugin_a"])
        target = MetaData()
        Table("plugin_a", target, Column("id", Integer, primary_key=True))

        with pytest.warns(SchemaMigrationWarning):
            PlainBundle.update_plugin_schema(target, installed, plugin_context, allow_destructive=True)

        assert _columns(plugin_context.engine, "plugin_a") == ["id"]
        assert inspect(plugin_context.engine).get_indexes("plugin_a") == []


class TestUninstallAndDrop:
    def test_uninstall_keeps_tables(self, plugin_context, sample_plugin, two_table_metadata, table_names):
        PlainBundle.install_plugin_schema(two_table_metadata, plugin_context)

        PlainBundle.on_plugin_uninstall(sample_plugin, plugin_context, two_table_metadata)

        assert {"plugin_a", "plugin_b"} <= table_names()

    def test_drop_removes_every_declared_table(self, plugin_context, two_table_metadata, table_names):
        PlainBundle.install_plugin_schema(two_table_metadata, plugin_context)

        assert PlainBundle.drop_plugin_schema(two_table_metadata, plugin_context) == 2

        assert not {"plugin_a", "plugin_b"} & table_names()
        assert {"pb_plugin", "pb_integration"} <= table_names()

    def test_failed_drop_keeps_everything(self, plugin_context, two_table_metadata, table_names):
        PlainBundle.install_plugin_schema(two_table_metadata, plugin_context)
        extended = MetaData()
        for table in two_table_metadata.sorted_tables:
            table.to_metadata(extended)
        # Sorts first, so it is dropped last
        Table("plugin_0_missing", extended, Column("id", Integer, primary_key=True))

        with pytest.raises(OperationalError):
            PlainBundle.drop_plugin_schema(extended, plugin_context)

        assert {"plugin_a", "plugin_b"} <= table_names()
