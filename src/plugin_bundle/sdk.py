# src/plugin_bundle/sdk.py
import inspect
import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from sqlalchemy import MetaData

from plugin_bundle.context import PluginContext
from plugin_bundle.db.access import execute_schema_statements
from plugin_bundle.db.models import Plugin
from plugin_bundle.db.schema_tool import (
    DestructiveMigrationError,
    SchemaChange,
    SchemaMigrationWarning,
)
from plugin_bundle.interface import LegacyInstallable, LegacyUpdatable

logger = logging.getLogger(__name__)


@dataclass
class PluginManifest:
    """
    Descriptive data a bundle module exports as ``MANIFEST``.
    A change of ``version`` is what triggers the update hooks.
    """

    name: str
    version: str = "1.0.0"
    description: Optional[str] = None
    author: Optional[str] = None

    # Integration names the plugin provides, e.g. ["Salesforce"]
    integrations: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Addon:
    """
    Read-only view of a ``Plugin`` in the shape 1.x update hooks expect.
    """

    author: Optional[str]
    bundle: str
    description: Optional[str]
    id: Optional[int]
    integrations: Tuple[Any, ...]
    is_missing: bool
    name: str
    version: Optional[str]

    @classmethod
    def from_plugin(cls, plugin: Plugin) -> "Addon":
        return cls(
            author=plugin.author,
            bundle=plugin.bundle,
            description=plugin.description,
            id=plugin.id,
            integrations=tuple(plugin.integrations),
            is_missing=bool(plugin.is_missing),
            name=plugin.name,
            version=plugin.version,
        )


class PluginBundleBase:
    """
    Base class extended by plugin bundles.

    A bundle declares its tables on ``metadata`` and inherits the schema
    lifecycle below. Every schema operation runs as a single transaction:
    either all of its statements apply or none do, and the database error
    that caused a rollback reaches the caller unchanged.

    Example:
        class Bundle(PluginBundleBase):
            metadata = EmailStatsBase.metadata
    """

    metadata: Optional[MetaData] = None

    @classmethod
    def on_plugin_install(cls, plugin: Plugin, context: PluginContext, metadata: Optional[MetaData] = None):
        """
        Called by the registrar when a bundle is found that has no ``Plugin``
        record yet.
        """
        # 1.x hook, deprecated
        if isinstance(cls, LegacyInstallable):
            logger.debug(f"Calling legacy on_install for {plugin.bundle}")
            _legacy_hook(cls, "on_install")(context)

        if metadata is not None:
            cls.install_plugin_schema(metadata, context)

    @classmethod
    def install_plugin_schema(cls, metadata: MetaData, context: PluginContext) -> int:
        """
        Create the tables and indexes declared in ``metadata``.

        Returns the number of statements executed (0 when nothing is
        declared, in which case no transaction is opened).
        """
        install_queries = context.schema_tool().get_create_schema_sql(metadata)
        return execute_schema_statements(context.engine, install_queries)

    @classmethod
    def on_plugin_update(
        cls,
        plugin: Plugin,
        context: PluginContext,
        metadata: Optional[MetaData] = None,
        installed_schema: Optional[MetaData] = None,
    ):
        """
        Called by the registrar when the bundle's version differs from the
        installed one.

        No schema changes are applied here. Bundles that need them should
        override this and run their own upgrade statements, or call
        ``update_plugin_schema`` explicitly.
        """
        # 1.x hook, deprecated
        if isinstance(cls, LegacyUpdatable):
            logger.debug(f"Calling legacy on_update for {plugin.bundle}")
            _legacy_hook(cls, "on_update")(Addon.from_plugin(plugin), context)

    @classmethod
    def update_plugin_schema(
        cls,
        metadata: MetaData,
        installed_schema: MetaData,
        context: PluginContext,
        allow_destructive: bool = False,
    ) -> List[SchemaChange]:
        """
        Migrate ``installed_schema`` to what ``metadata`` declares.

        WARNING - the generated diff is not guaranteed to be correct and may
        drop columns or tables, losing their data. Review the statements
        (see ``SchemaTool.compare``) before using this in production. Prefer
        hand-written upgrade statements per database platform.

        Raises ``DestructiveMigrationError`` without executing anything when
        the diff contains drops and ``allow_destructive`` is false.
        """
        changes = context.schema_tool().compare(metadata, installed_schema)
        if not changes:
            logger.info("Installed schema already matches metadata.")
            return changes

        warnings.warn(
            f"Applying {len(changes)} generated schema change(s); automatic diffs can lose data.",
            SchemaMigrationWarning,
            stacklevel=2,
        )
        logger.warning(f"Applying {len(changes)} generated schema change(s)")

        destructive = [c.sql for c in changes if c.destructive]
        if destructive and not allow_destructive:
            raise DestructiveMigrationError(destructive)

        execute_schema_statements(context.engine, [c.sql for c in changes])
        return changes

    @classmethod
    def on_plugin_uninstall(cls, plugin: Plugin, context: PluginContext, metadata: Optional[MetaData] = None):
        """
        Reserved for pre-drop work such as exporting data. Does not drop
        anything; use ``drop_plugin_schema`` for that.
        """
        logger.debug(f"on_plugin_uninstall for {plugin.bundle}: nothing to do")

    @classmethod
    def drop_plugin_schema(cls, metadata: MetaData, context: PluginContext) -> int:
        """Drop the tables declared in ``metadata``, dependents first."""
        drop_queries = context.schema_tool().get_drop_schema_sql(metadata)
        return execute_schema_statements(context.engine, drop_queries)


def _legacy_hook(bundle_cls: type, name: str):
    """
    Bind a 1.x hook whether the bundle declared it as a classmethod,
    staticmethod or plain method. Plain methods get a fresh instance.
    """
    raw = inspect.getattr_static(bundle_cls, name)
    if isinstance(raw, (classmethod, staticmethod)):
        return getattr(bundle_cls, name)
    if inspect.isfunction(raw):
        return getattr(bundle_cls(), name)
    raise TypeError(f"{bundle_cls.__name__}.{name} must be a classmethod, staticmethod or method, got {raw!r}")
