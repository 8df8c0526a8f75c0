"""Database models."""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from almond_cloud.db.database import Base


class Organization(Base):
    """Developer organization.

    Only used to compute the authorization scope of an API caller.
    """

    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    developer_key = Column(String(128), nullable=False, unique=True, index=True)
    is_admin = Column(Boolean, nullable=False, default=False)

    devices = relationship("DeviceClass", back_populates="owner_org")


class DeviceClass(Base):
    """A distributable device integration."""

    __tablename__ = "device_class"

    id = Column(Integer, primary_key=True, index=True)
    primary_kind = Column(String(128), nullable=False, unique=True, index=True)
    owner = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")

    category = Column(String(32), nullable=False, default="data", index=True)  # online, physical, data, system
    subcategory = Column(String(32), nullable=False, default="service", index=True)

    website = Column(String(255), nullable=False, default="")
    repository = Column(String(255), nullable=False, default="")
    license = Column(String(255), nullable=False, default="")

    downloadable = Column(Boolean, nullable=False, default=False)

    # Maximum version (visible to the owner and admins) and publicly approved version
    developer_version = Column(Integer, nullable=False, default=0)
    approved_version = Column(Integer, nullable=True)

    owner_org = relationship("Organization", back_populates="devices")
    versions = relationship("DeviceCodeVersion", back_populates="device", cascade="all, delete-orphan")
    kinds = relationship("DeviceClassKind", back_populates="device", cascade="all, delete-orphan")
    discovery_services = relationship("DeviceDiscoveryService", back_populates="device", cascade="all, delete-orphan")


class DeviceCodeVersion(Base):
    """Stored source of one version of a device.

    ``code`` is either a JSON manifest or ThingTalk class source; ``factory``
    caches the derived factory descriptor as JSON text.
    """

    __tablename__ = "device_code_version"

    device_id = Column(Integer, ForeignKey("device_class.id", ondelete="CASCADE"), primary_key=True)
    version = Column(Integer, primary_key=True)
    code = Column(Text, nullable=False)
    factory = Column(Text, nullable=True)
    mtime = Column(DateTime, nullable=False, default=datetime.utcnow)

    device = relationship("DeviceClass", back_populates="versions")


class DeviceClassKind(Base):
    """Additional kinds implemented by a device (e.g. abstract interfaces)."""

    __tablename__ = "device_class_kind"

    device_id = Column(Integer, ForeignKey("device_class.id", ondelete="CASCADE"), primary_key=True)
    kind = Column(String(128), primary_key=True, index=True)
    is_child = Column(Boolean, nullable=False, default=False)

    device = relationship("DeviceClass", back_populates="kinds")


class DeviceDiscoveryService(Base):
    """Discovery identifiers (bluetooth UUIDs, UPnP search targets) of a device."""

    __tablename__ = "device_discovery_services"

    device_id = Column(Integer, ForeignKey("device_class.id", ondelete="CASCADE"), primary_key=True)
    discovery_type = Column(String(32), primary_key=True)  # bluetooth, upnp
    service = Column(String(128), primary_key=True, index=True)

    device = relationship("DeviceClass", back_populates="discovery_services")


class DeviceSchema(Base):
    """Type information of a kind (the functions it exposes)."""

    __tablename__ = "device_schema"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(128), nullable=False, unique=True, index=True)
    kind_type = Column(String(32), nullable=False, default="primary")  # primary, global, other, category, discovery
    kind_canonical = Column(String(128), nullable=False, default="")
    owner = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)

    developer_version = Column(Integer, nullable=False, default=0)
    approved_version = Column(Integer, nullable=True)

    channels = relationship("DeviceSchemaChannel", back_populates="schema", cascade="all, delete-orphan")
    canonicals = relationship("DeviceSchemaChannelCanonical", back_populates="schema", cascade="all, delete-orphan")


class DeviceSchemaChannel(Base):
    """One query or action of a schema at a given version."""

    __tablename__ = "device_schema_channels"

    schema_id = Column(Integer, ForeignKey("device_schema.id", ondelete="CASCADE"), primary_key=True)
    version = Column(Integer, primary_key=True)
    name = Column(String(128), primary_key=True)
    channel_type = Column(String(16), nullable=False)  # query, action

    argnames = Column(JSON, nullable=False, default=list)
    types = Column(JSON, nullable=False, default=list)
    required = Column(JSON, nullable=False, default=list)
    is_input = Column(JSON, nullable=False, default=list)
    string_values = Column(JSON, nullable=False, default=list)

    is_list = Column(Boolean, nullable=False, default=False)
    is_monitorable = Column(Boolean, nullable=False, default=False)
    doc = Column(Text, nullable=False, default="")
    confirm = Column(Boolean, nullable=False, default=True)

    schema = relationship("DeviceSchema", back_populates="channels")


class DeviceSchemaChannelCanonical(Base):
    """Localized metadata of a schema function."""

    __tablename__ = "device_schema_channel_canonicals"

    schema_id = Column(Integer, ForeignKey("device_schema.id", ondelete="CASCADE"), primary_key=True)
    version = Column(Integer, primary_key=True)
    language = Column(String(8), primary_key=True)
    name = Column(String(128), primary_key=True)

    canonical = Column(Text, nullable=False, default="")
    confirmation = Column(Text, nullable=False, default="")
    confirmation_remote = Column(Text, nullable=False, default="")
    formatted = Column(JSON, nullable=False, default=list)
    questions = Column(JSON, nullable=False, default=list)
    argcanonicals = Column(JSON, nullable=False, default=list)

    schema = relationship("DeviceSchema", back_populates="canonicals")


class ExampleUtterance(Base):
    """A stored usage example: an utterance and its ThingTalk code."""

    __tablename__ = "example_utterances"

    id = Column(Integer, primary_key=True, index=True)
    schema_id = Column(Integer, ForeignKey("device_schema.id", ondelete="CASCADE"), nullable=True, index=True)
    is_base = Column(Boolean, nullable=False, default=False)
    language = Column(String(8), nullable=False, default="en", index=True)
    type = Column(String(32), nullable=False, default="thingpedia")

    utterance = Column(Text, nullable=False)
    preprocessed = Column(Text, nullable=False, default="")
    target_code = Column(Text, nullable=False)
    name = Column(String(128), nullable=True)

    click_count = Column(Integer, nullable=False, default=0)
    like_count = Column(Integer, nullable=False, default=0)

    schema = relationship("DeviceSchema")


class EntityName(Base):
    """A named entity type (e.g. tt:stock_id)."""

    __tablename__ = "entity_names"

    id = Column(String(64), primary_key=True)
    language = Column(String(8), primary_key=True, default="en")
    name = Column(String(255), nullable=False)
    is_well_known = Column(Boolean, nullable=False, default=False)
    has_ner_support = Column(Boolean, nullable=False, default=False)


class EntityLexicon(Base):
    """A value of an entity type, with its canonical (searchable) form."""

    __tablename__ = "entity_lexicon"

    id = Column(Integer, primary_key=True)
    language = Column(String(8), nullable=False, default="en", index=True)
    entity_id = Column(String(64), nullable=False, index=True)
    entity_value = Column(String(255), nullable=False)
    entity_canonical = Column(String(255), nullable=False, index=True)
    entity_name = Column(String(255), nullable=False)


class StringType(Base):
    """A string dataset type (e.g. tt:search_query)."""

    __tablename__ = "string_types"

    id = Column(Integer, primary_key=True)
    language = Column(String(8), nullable=False, default="en", index=True)
    type_name = Column(String(64), nullable=False)
    name = Column(String(255), nullable=False)
    license = Column(String(64), nullable=False, default="public-domain")
    attribution = Column(Text, nullable=False, default="")

    __table_args__ = (UniqueConstraint("language", "type_name"),)


class Snapshot(Base):
    """A frozen point-in-time copy of Thingpedia."""

    __tablename__ = "snapshot"

    snapshot_id = Column(Integer, primary_key=True)
    description = Column(Text, nullable=False, default="")
    date = Column(DateTime, nullable=False, default=datetime.utcnow)


class DeviceSchemaSnapshot(Base):
    __tablename__ = "device_schema_snapshot"

    snapshot_id = Column(Integer, ForeignKey("snapshot.snapshot_id", ondelete="CASCADE"), primary_key=True)
    schema_id = Column(Integer, primary_key=True)
    kind = Column(String(128), nullable=False)
    kind_type = Column(String(32), nullable=False, default="primary")
    owner = Column(Integer, nullable=False)
    developer_version = Column(Integer, nullable=False, default=0)
    approved_version = Column(Integer, nullable=True)


class EntityNameSnapshot(Base):
    __tablename__ = "entity_names_snapshot"

    snapshot_id = Column(Integer, ForeignKey("snapshot.snapshot_id", ondelete="CASCADE"), primary_key=True)
    id = Column(String(64), primary_key=True)
    language = Column(String(8), primary_key=True, default="en")
    name = Column(String(255), nullable=False)
    is_well_known = Column(Boolean, nullable=False, default=False)
    has_ner_support = Column(Boolean, nullable=False, default=False)
