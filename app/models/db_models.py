"""
Database models for organizations, connectors, devices, events and automations.
"""
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class Organization(Base):
    """Tenant. Owns connectors, locations and automations and carries its event retention policy."""
    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True)

    # Event retention policy: time | count | hybrid
    retention_strategy = Column(String(20), nullable=True)
    retention_max_age_days = Column(Integer, nullable=True)
    retention_max_events = Column(Integer, nullable=True)
    last_cleanup_at = Column(DateTime, nullable=True)
    last_cleanup_deleted = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    connectors = relationship("Connector", back_populates="organization")

    def __repr__(self):
        return f"<Organization(id={self.id}, name={self.name})>"


class Location(Base):
    """Physical site (building, campus) within an organization."""
    __tablename__ = "locations"

    id = Column(String(36), primary_key=True, default=_uuid)
    organization_id = Column(String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    parent_id = Column(String(36), ForeignKey("locations.id", ondelete="SET NULL"), nullable=True)
    name = Column(String(255), nullable=False)
    time_zone = Column(String(64), nullable=False, default="UTC")
    address_street = Column(String(255), nullable=True)
    address_city = Column(String(255), nullable=True)
    address_state = Column(String(64), nullable=True)
    address_postal_code = Column(String(20), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, server_default=func.now())

    areas = relationship("Area", back_populates="location", cascade="all, delete-orphan")


class Area(Base):
    """Space inside a location that devices are assigned to."""
    __tablename__ = "areas"

    id = Column(String(36), primary_key=True, default=_uuid)
    location_id = Column(String(36), ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, server_default=func.now())

    location = relationship("Location", back_populates="areas")


class Connector(Base):
    """
    A configured vendor integration instance (YoLink home, Piko system, Genea account).

    The vendor credentials live in cfg_enc as a JSON string.
    """
    __tablename__ = "connectors"

    id = Column(String(36), primary_key=True, default=_uuid)
    organization_id = Column(String(36), ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True, index=True)
    category = Column(String(50), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    cfg_enc = Column(Text, nullable=False, default="{}")
    events_enabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    organization = relationship("Organization", back_populates="connectors")
    devices = relationship("Device", back_populates="connector", cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self):
        return f"<Connector(id={self.id}, category={self.category}, name={self.name})>"


class PikoServer(Base):
    """A Piko media server discovered through a Piko connector."""
    __tablename__ = "piko_servers"

    server_id = Column(String(100), primary_key=True)
    connector_id = Column(String(36), ForeignKey("connectors.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    status = Column(String(50), nullable=True)
    version = Column(String(100), nullable=True)
    os_platform = Column(String(100), nullable=True)
    os_variant_version = Column(String(100), nullable=True)
    url = Column(String(500), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class Device(Base):
    """
    External device record, unique per (connector_id, device_id).

    status only ever holds a DisplayState value (or NULL before the first mapped state).
    """
    __tablename__ = "devices"

    id = Column(String(36), primary_key=True, default=_uuid)
    device_id = Column(String(255), nullable=False)
    connector_id = Column(String(36), ForeignKey("connectors.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(100), nullable=False)  # Raw vendor identifier, e.g. DoorSensor
    standardized_device_type = Column(String(50), nullable=True)
    standardized_device_subtype = Column(String(50), nullable=True)
    status = Column(String(50), nullable=True)
    is_security_device = Column(Boolean, nullable=False, default=False)
    battery_percentage = Column(Integer, nullable=True)
    server_id = Column(String(100), ForeignKey("piko_servers.server_id", ondelete="SET NULL"), nullable=True)
    vendor = Column(String(100), nullable=True)
    model = Column(String(255), nullable=True)
    url = Column(String(500), nullable=True)
    raw_device_data = Column(JSON, nullable=True)
    area_id = Column(String(36), ForeignKey("areas.id", ondelete="SET NULL"), nullable=True)
    location_id = Column(String(36), ForeignKey("locations.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    connector = relationship("Connector", back_populates="devices")
    server = relationship("PikoServer")
    area = relationship("Area")

    __table_args__ = (
        UniqueConstraint("connector_id", "device_id", name="devices_connector_device_unique_idx"),
    )

    def __repr__(self):
        return f"<Device(id={self.id}, device_id={self.device_id}, type={self.type}, status={self.status})>"


class CameraAssociation(Base):
    """Links a device to a Piko camera device (both rows in devices)."""
    __tablename__ = "camera_associations"

    device_id = Column(String(36), ForeignKey("devices.id", ondelete="CASCADE"), primary_key=True)
    piko_camera_id = Column(String(36), ForeignKey("devices.id", ondelete="CASCADE"), primary_key=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, server_default=func.now())


class Event(Base):
    """
    Standardized event record. Append-only apart from retention cleanup.
    """
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_uuid = Column(String(36), nullable=False, unique=True)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    connector_id = Column(String(36), ForeignKey("connectors.id", ondelete="CASCADE"), nullable=False)
    device_id = Column(String(255), nullable=False)  # External device id
    standardized_event_category = Column(String(50), nullable=False)
    standardized_event_type = Column(String(50), nullable=False)
    standardized_event_subtype = Column(String(50), nullable=True)
    raw_event_type = Column(String(100), nullable=True)
    standardized_payload = Column(JSON, nullable=True)
    raw_payload = Column(JSON, nullable=True)
    best_shot_url_component = Column(String(500), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, server_default=func.now())

    __table_args__ = (
        Index('idx_events_connector_device', 'connector_id', 'device_id'),
        Index('idx_events_category_timestamp', 'standardized_event_category', 'timestamp'),
    )

    def __repr__(self):
        return f"<Event(id={self.id}, uuid={self.event_uuid}, type={self.standardized_event_type}, device={self.device_id})>"


class Automation(Base):
    """User-authored automation rule. config_json follows AutomationConfig."""
    __tablename__ = "automations"

    id = Column(String(36), primary_key=True, default=_uuid)
    organization_id = Column(String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    source_connector_id = Column(String(36), ForeignKey("connectors.id", ondelete="CASCADE"), nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)
    config_json = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Automation(id={self.id}, name={self.name}, enabled={self.enabled})>"


class ServiceConfiguration(Base):
    """Credentials for a third-party service, one row per type (PUSHOVER, OPENAI, ...)."""
    __tablename__ = "service_configurations"

    id = Column(String(36), primary_key=True, default=_uuid)
    type = Column(String(50), nullable=False, unique=True)
    config_enc = Column(Text, nullable=False)
    is_enabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
