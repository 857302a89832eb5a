# src/plugin_bundle/services/registrar.py
"""
Keeps the ``pb_plugin`` records in step with the bundles found on disk.

``reload()`` is the administrative "reload plugins" action:

- new bundle            -> install hooks + schema, then a Plugin row
- version changed       -> update hooks, then the row gets the new version
- row whose code is gone -> marked missing (its tables are left alone)
- missing bundle is back -> missing flag cleared

Schema work runs on its own connection between short registry
transactions, so the registry never holds a lock while DDL executes.
"""
import importlib.util
import logging
import sys
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Dict, List, Optional, Type

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from plugin_bundle.context import PluginContext
from plugin_bundle.db.base_session import SessionLocal
from plugin_bundle.db.models import Integration, Plugin
from plugin_bundle.db.schema_tool import SchemaChange
from plugin_bundle.db.setup import snapshot_schema
from plugin_bundle.sdk import PluginBundleBase, PluginManifest

logger = logging.getLogger(__name__)

# Bundle modules are registered under this prefix so a bundle named after a
# stdlib or third-party module (json.py, logging.py) never replaces it.
MODULE_NAMESPACE = "plugin_bundle_plugins"


class PluginNotFound(LookupError):
    pass


@dataclass
class DiscoveredBundle:
    bundle: str
    manifest: PluginManifest
    bundle_cls: Type[PluginBundleBase]
    module: Optional[ModuleType] = None

    @property
    def metadata(self):
        return self.bundle_cls.metadata


@dataclass
class ReloadReport:
    installed: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    restored: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    failed: Dict[str, Exception] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class PluginRegistrar:
    def __init__(
        self,
        plugin_dir: Path,
        context: PluginContext,
        bundle_attribute: str = "Bundle",
        manifest_attribute: str = "MANIFEST",
    ):
        self.plugin_dir = Path(plugin_dir)
        self.context = context
        self.bundle_attribute = bundle_attribute
        self.manifest_attribute = manifest_attribute
        self._bundles: Dict[str, DiscoveredBundle] = {}
        # Modules present on disk that raised while importing, by bundle name
        self.load_errors: Dict[str, Exception] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_settings(cls, context: PluginContext, app_settings) -> "PluginRegistrar":
        plugins = app_settings.plugins
        return cls(
            plugins.resolved_dir(),
            context,
            bundle_attribute=plugins.bundle_attribute,
            manifest_attribute=plugins.manifest_attribute,
        )

    # --- Discovery ---

    def discover(self) -> Dict[str, DiscoveredBundle]:
        """
        Import every bundle module in ``plugin_dir``.

        A module counts as a bundle when it exports both a PluginBundleBase
        subclass and a PluginManifest. Modules that fail to import are
        logged, skipped and kept in ``load_errors``.
        """
        self._bundles = {}
        self.load_errors = {}
        if not self.plugin_dir.exists():
            logger.warning(f"Plugin directory {self.plugin_dir} does not exist")
            return self._bundles

        # Bundles may import helpers that sit next to them. Appended, so a
        # bundle file can never shadow an installed module of the same name.
        if str(self.plugin_dir) not in sys.path:
            sys.path.append(str(self.plugin_dir))

        for path in sorted(self.plugin_dir.iterdir()):
            if path.name.startswith("_"):
                continue
            if path.is_dir():
                source = path / "__init__.py"
                if not source.exists():
                    continue
            elif path.suffix == ".py":
                source = path
            else:
                continue

            name = path.stem
            try:
                mod = self._load_module(name, source)
            except Exception as e:
                logger.error(f"Failed to load plugin {name}: {e}", exc_info=True)
                self.load_errors[name] = e
                continue

            found = self._inspect_module(name, mod)
            if found is not None:
                self._bundles[name] = found
                logger.info(f"Discovered plugin bundle: {name} v{found.manifest.version}")

        return self._bundles

    def _load_module(self, name: str, source: Path) -> ModuleType:
        # Registered so dataclasses, pickling and relative imports inside
        # package bundles can find the module while it executes
        module_name = f"{MODULE_NAMESPACE}.{name}"
        spec = importlib.util.spec_from_file_location(
            module_name,
            source,
            submodule_search_locations=[str(source.parent)] if source.name == "__init__.py" else None,
        )
        if not spec or not spec.loader:
            raise ImportError(f"Cannot build import spec for {source}")

        mod = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = mod
        try:
            spec.loader.exec_module(mod)
        except Exception:
            sys.modules.pop(module_name, None)
            raise
        return mod

    def _inspect_module(self, name: str, mod: ModuleType) -> Optional[DiscoveredBundle]:
        bundle_cls = getattr(mod, self.bundle_attribute, None)
        manifest = getattr(mod, self.manifest_attribute, None)

        if not (isinstance(bundle_cls, type) and issubclass(bundle_cls, PluginBundleBase)):
            logger.debug(f"Skipping {name}: no '{self.bundle_attribute}' PluginBundleBase subclass.")
            return None
        if not isinstance(manifest, PluginManifest):
            logger.debug(f"Skipping {name}: no '{self.manifest_attribute}' PluginManifest.")
            return None

        return DiscoveredBundle(bundle=name, manifest=manifest, bundle_cls=bundle_cls, module=mod)

    def get_bundle(self, bundle: str) -> DiscoveredBundle:
        if bundle not in self._bundles:
            self.discover()
        if bundle not in self._bundles:
            raise PluginNotFound(f"Plugin bundle '{bundle}' not found. loaded: {list(self._bundles.keys())}")
        return self._bundles[bundle]

    # --- Locking ---

    @contextmanager
    def _lock_for(self, bundle: str):
        """Serialize lifecycle work per bundle within this process."""
        with self._locks_guard:
            lock = self._locks.setdefault(bundle, threading.Lock())
        with lock:
            yield

    # --- Reload ---

    def reload(self) -> ReloadReport:
        bundles = self.discover()
        report = ReloadReport()
        # Code that is present but broken is a failure, not a missing bundle
        report.failed.update(self.load_errors)

        for name, found in bundles.items():
            with self._lock_for(name):
                try:
                    outcome = self._sync_bundle(found)
                except Exception as e:
                    logger.error(f"Failed to reload plugin {name}: {e}", exc_info=True)
                    report.failed[name] = e
                    continue

            for key in outcome:
                getattr(report, key).append(name)

        with SessionLocal(bind=self.context.engine) as session:
            stmt = select(Plugin).where(Plugin.is_missing.is_(False))
            for plugin in session.scalars(stmt):
                if plugin.bundle not in bundles and plugin.bundle not in self.load_errors:
                    plugin.is_missing = True
                    report.missing.append(plugin.bundle)
                    logger.warning(f"Plugin {plugin.bundle} is installed but its bundle is missing")
            session.commit()

        logger.info(
            f"Plugin reload: {len(report.installed)} installed, {len(report.updated)} updated, "
            f"{len(report.missing)} missing, {len(report.failed)} failed"
        )
        return report

    def _sync_bundle(self, found: DiscoveredBundle) -> List[str]:
        manifest = found.manifest

        with SessionLocal(bind=self.context.engine) as session:
            plugin = _load_plugin(session, found.bundle)
            # Release the read transaction before any DDL runs
            session.commit()

            if plugin is None:
                plugin = Plugin(bundle=found.bundle, is_missing=False)
                _apply_manifest(plugin, manifest)

                found.bundle_cls.on_plugin_install(plugin, self.context, found.metadata)

                session.add(plugin)
                session.commit()
                logger.info(f"Installed plugin {found.bundle} v{manifest.version}")
                return ["installed"]

            outcome = []
            if plugin.version != manifest.version:
                installed_schema = self.snapshot(found)
                found.bundle_cls.on_plugin_update(plugin, self.context, found.metadata, installed_schema)

                logger.info(f"Updated plugin {found.bundle} from v{plugin.version} to v{manifest.version}")
                _apply_manifest(plugin, manifest)
                outcome.append("updated")

            if plugin.is_missing:
                plugin.is_missing = False
                outcome.append("restored")

            session.commit()
            return outcome

    # --- Explicit schema operations ---

    def snapshot(self, found: DiscoveredBundle):
        """Reflect only the tables this bundle declares."""
        metadata = found.metadata
        if metadata is None:
            return None
        names = [t.name for t in metadata.sorted_tables]
        return snapshot_schema(self.context.engine, names, schema=metadata.schema)

    def migrate(self, bundle: str, allow_destructive: bool = False, dry_run: bool = False) -> List[SchemaChange]:
        """
        Bring a bundle's tables in line with its metadata using a generated diff.
        With ``dry_run`` the changes are only computed.
        """
        found = self.get_bundle(bundle)
        with self._lock_for(bundle):
            installed_schema = self.snapshot(found)
            if dry_run:
                return self.context.schema_tool().compare(found.metadata, installed_schema)
            return found.bundle_cls.update_plugin_schema(
                found.metadata, installed_schema, self.context, allow_destructive=allow_destructive
            )

    def drop(self, bundle: str) -> int:
        """
        Uninstall a bundle: run its uninstall hook, drop its tables and
        delete its Plugin row. The bundle code must still be present so its
        tables are known.
        """
        found = self.get_bundle(bundle)
        with self._lock_for(bundle):
            with SessionLocal(bind=self.context.engine) as session:
                plugin = _load_plugin(session, bundle)
                session.commit()
                if plugin is None:
                    raise PluginNotFound(f"Plugin '{bundle}' is not installed")

                found.bundle_cls.on_plugin_uninstall(plugin, self.context, found.metadata)
                dropped = 0
                if found.metadata is not None:
                    dropped = found.bundle_cls.drop_plugin_schema(found.metadata, self.context)

                session.delete(plugin)
                session.commit()

        logger.info(f"Dropped plugin {bundle} ({dropped} schema statement(s))")
        return dropped

    def list_plugins(self) -> List[Plugin]:
        with SessionLocal(bind=self.context.engine) as session:
            stmt = select(Plugin).options(selectinload(Plugin.integrations)).order_by(Plugin.name)
            return list(session.scalars(stmt))


def _load_plugin(session: Session, bundle: str) -> Optional[Plugin]:
    stmt = select(Plugin).options(selectinload(Plugin.integrations)).where(Plugin.bundle == bundle)
    return session.scalars(stmt).first()


def _apply_manifest(plugin: Plugin, manifest: PluginManifest):
    plugin.name = manifest.name
    plugin.description = manifest.description
    plugin.author = manifest.author
    plugin.version = manifest.version

    existing = {i.name for i in plugin.integrations}
    for integration_name in manifest.integrations:
        if integration_name not in existing:
            plugin.integrations.append(Integration(name=integration_name))
