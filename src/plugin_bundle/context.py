from dataclasses import dataclass
from typing import Any, Callable, Optional

from sqlalchemy import Engine
from sqlalchemy.engine import Dialect

from plugin_bundle.db.access import get_engine
from plugin_bundle.db.schema_tool import SchemaTool
from plugin_bundle.interface import SchemaDiffEngine


@dataclass(frozen=True)
class PluginContext:
    """
    What a bundle's lifecycle hooks get to work with: the database engine,
    the application settings and the DDL generator for that engine.
    """

    engine: Engine
    settings: Any = None
    schema_tool_factory: Optional[Callable[[Dialect], SchemaDiffEngine]] = None

    def schema_tool(self) -> SchemaDiffEngine:
        factory = self.schema_tool_factory or SchemaTool
        return factory(self.engine.dialect)

    @classmethod
    def from_settings(cls, app_settings):
        """Build an engine from the database section of ``app_settings``."""
        return cls(engine=get_engine(app_settings.database), settings=app_settings)
