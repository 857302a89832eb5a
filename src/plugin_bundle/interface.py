# src/plugin_bundle/interface.py
from typing import Any, List, Optional, Protocol, runtime_checkable

from sqlalchemy import MetaData

# Avoid importing the sdk here; hooks receive these at runtime.
PluginContextLike = Any
AddonLike = Any


@runtime_checkable
class LegacyInstallable(Protocol):
    """
    Bundles written against the 1.x contract ran their own install logic
    from a class-level ``on_install`` hook. It is still called, before any
    schema is created, when a bundle class defines it.

    Declare it as a classmethod (or staticmethod). A plain method is
    called on a fresh, argument-less instance of the bundle class.
    """

    @classmethod
    def on_install(cls, context: PluginContextLike):
        ...


@runtime_checkable
class LegacyUpdatable(Protocol):
    """
    1.x update hook. Receives an ``Addon`` view of the plugin record rather
    than the ``Plugin`` row itself. Declared like ``on_install``.
    """

    @classmethod
    def on_update(cls, addon: AddonLike, context: PluginContextLike):
        ...


@runtime_checkable
class SchemaDiffEngine(Protocol):
    """
    Turns entity metadata into ordered DDL. Must be pure: no database access.
    """

    def get_create_schema_sql(self, metadata: Optional[MetaData]) -> List[str]:
        ...

    def get_drop_schema_sql(self, metadata: Optional[MetaData]) -> List[str]:
        ...

    def compare(self, metadata: Optional[MetaData], installed: Optional[MetaData]) -> list:
        """Returns a list of ``SchemaChange``."""
        ...
