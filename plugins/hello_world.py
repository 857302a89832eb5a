"""
Example plugin bundle.

Copy this file into the configured plugin directory and run
``plugin-bundle reload`` to install its tables.
"""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import declarative_base, relationship

from plugin_bundle.sdk import PluginBundleBase, PluginManifest

HelloWorldBase = declarative_base()


class World(HelloWorldBase):
    __tablename__ = "plugin_hello_world"
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    visit_count = Column(Integer, default=0)
    date_added = Column(DateTime, server_default=func.now())
    visits = relationship("WorldVisit", back_populates="world", cascade="all, delete-orphan")


class WorldVisit(HelloWorldBase):
    __tablename__ = "plugin_hello_world_visit"
    id = Column(Integer, primary_key=True)
    world_id = Column(Integer, ForeignKey("plugin_hello_world.id"), nullable=False, index=True)
    visitor = Column(String(255), nullable=True)
    visited_at = Column(DateTime, server_default=func.now())
    world = relationship("World", back_populates="visits")


MANIFEST = PluginManifest(
    name="Hello World",
    version="1.0.0",
    description="Example bundle that tracks visits to worlds",
    author="Plugin Bundle",
)


class Bundle(PluginBundleBase):
    metadata = HelloWorldBase.metadata
