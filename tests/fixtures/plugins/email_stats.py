"""
Fixture bundle with two related tables and a 1.x update hook.
"""
from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table

from plugin_bundle.sdk import PluginBundleBase, PluginManifest

bundle_metadata = MetaData()

Table(
    "plugin_email_stat",
    bundle_metadata,
    Column("id", Integer, primary_key=True),
    Column("email", String(255), nullable=False, index=True),
)
Table(
    "plugin_email_stat_device",
    bundle_metadata,
    Column("id", Integer, primary_key=True),
    Column("stat_id", Integer, ForeignKey("plugin_email_stat.id"), nullable=False),
    Column("device", String(50)),
)

MANIFEST = PluginManifest(
    name="Email Stats",
    version="1.0.0",
    description="Open and click tracking",
    author="Acme",
    integrations=["Mailer"],
)

# (addon, context) pairs seen by on_update
UPDATES = []


class Bundle(PluginBundleBase):
    metadata = bundle_metadata

    @classmethod
    def on_update(cls, addon, context):
        UPDATES.append((addon, context))
