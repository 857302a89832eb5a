"""
Plugin Bundle Configuration.

Settings are read from ``global_config.toml`` at the repository root, then
from the environment and a ``.env`` file.
"""
import sys
from typing import Union, Literal, Tuple, Callable, Type
from pathlib import Path

from pydantic import BaseModel, Field
from typing import Optional

from pydantic_settings import (
    BaseSettings,
    SettingsConfigDict,
    TomlConfigSettingsSource,
    InitSettingsSource,
    EnvSettingsSource,
    DotEnvSettingsSource,
    SecretsSettingsSource,
)

# Resolves to the repository root, where `global_config.toml` lives.
BASE_DIR = Path(__file__).resolve().parent.parent.parent
TOML_PATH = BASE_DIR / "global_config.toml"

if not TOML_PATH.is_file():
    print(f"WARNING: Config file not found at path: {TOML_PATH}", file=sys.stderr)
    print(f"WARNING: Current working directory: {Path.cwd()}", file=sys.stderr)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_to_file: bool = False
    log_file: str = "plugin_bundle.log"
    rotation_size_mb: int = 10
    rotation_backup_count: int = 5
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    # Log every statement SQLAlchemy sends (schema DDL included) at INFO
    echo_sql: bool = False

    def resolved_log_file(self) -> Path:
        path = Path(self.log_file)
        if not path.is_absolute():
            path = BASE_DIR / path
        return path


# Discriminated on 'type'.


class SQLiteConfig(BaseModel):
    type: Literal["sqlite3"] = "sqlite3"
    db_location: str = "plugin_bundle.sqlite3"
    in_memory: bool = False


class MSSQLConfig(BaseModel):
    type: Literal["mssql"] = "mssql"
    server_name: str = "YOUR_SERVER_NAME"
    db_name: str = "YOUR_DATABASE_NAME"
    driver: str = "{ODBC Driver 17 for SQL Server}"
    trusted_connection: str = "no"

    # Only needed for SQL authentication
    username: Optional[str] = None
    password: Optional[str] = None


DatabaseConfig = Union[SQLiteConfig, MSSQLConfig]


class PluginsConfig(BaseModel):
    """
    Where plugin bundles are discovered and what a bundle module must export.
    """

    plugin_dir: str = "plugins"
    bundle_attribute: str = "Bundle"  # PluginBundleBase subclass
    manifest_attribute: str = "MANIFEST"  # PluginManifest instance

    def resolved_dir(self) -> Path:
        path = Path(self.plugin_dir)
        if not path.is_absolute():
            path = BASE_DIR / path
        return path


class AppSettings(BaseSettings):
    """
    Main settings class that loads configuration from various sources.
    Uses defaults if the file or keys are missing.
    """

    logging: LoggingConfig = LoggingConfig()
    database: DatabaseConfig = Field(default=SQLiteConfig(), discriminator="type")
    plugins: PluginsConfig = PluginsConfig()

    model_config = SettingsConfigDict(
        extra="forbid",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: InitSettingsSource,
        env_settings: EnvSettingsSource,
        dotenv_settings: DotEnvSettingsSource,
        file_secret_settings: SecretsSettingsSource,
    ) -> Tuple[Callable, ...]:
        """
        Define the priority order for loading settings sources.
        The TOML file sits right after explicit init arguments.
        """
        return (
            init_settings,
            TomlConfigSettingsSource(settings_cls, toml_file=TOML_PATH),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )


settings = AppSettings()
