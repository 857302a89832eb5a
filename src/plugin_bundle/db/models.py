# src/plugin_bundle/db/models.py
"""
Host tables tracking installed plugin bundles.

A ``Plugin`` row is the descriptor handed to bundle lifecycle hooks. Bundles
never write to these tables; the registrar owns them.
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    Text,
    Boolean,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from plugin_bundle.db.base_session import Base, schema_fkey, make_table_args


class Plugin(Base):
    __tablename__ = "pb_plugin"
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_missing = Column(Boolean, default=False, nullable=False)
    bundle = Column(String(50), unique=True, nullable=False)
    version = Column(String(255), nullable=True)
    author = Column(String(255), nullable=True)
    integrations = relationship(
        "Integration",
        back_populates="plugin",
        cascade="all, delete-orphan",
        order_by="Integration.name",
    )

    def __repr__(self):
        return f"<Plugin {self.bundle} v{self.version}{' (missing)' if self.is_missing else ''}>"


class Integration(Base):
    """
    A named integration a plugin provides (e.g. a CRM connector).
    Publishing state is owned by the host and survives plugin updates.
    """

    __tablename__ = "pb_integration"
    id = Column(Integer, primary_key=True)
    plugin_id = Column(Integer, ForeignKey(schema_fkey("pb_plugin.id")), nullable=False)
    name = Column(String(255), nullable=False)
    is_published = Column(Boolean, default=False, nullable=False)
    plugin = relationship("Plugin", back_populates="integrations")

    __table_args__ = make_table_args(
        UniqueConstraint("plugin_id", "name", name="uq_integration_plugin_name")
    )
