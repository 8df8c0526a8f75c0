"""Pytest configuration and fixtures."""

import json
import os

# Set minimal environment variables for testing BEFORE importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "test_access_key")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test_secret_key")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from almond_cloud.db import models
from almond_cloud.db.database import Base, get_db
from almond_cloud.main import app


# Test database
TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


TWITTER_CODE = """class @com.twitter
#_[name="Twitter"]
#_[description="Connect your Almond with Twitter"] {
  import loader from @org.thingpedia.v2();
  import config from @org.thingpedia.config.oauth2(client_id="xxx", client_secret="yyy");

  monitorable list query home_timeline(out text: String,
                                       out author: Entity(tt:username))
  #_[canonical="twitter home timeline"]
  #_[confirmation="tweets from people you follow"]
  #[poll_interval=600000ms]
  #[doc="get tweets from the home timeline"];

  action post(in req status: String #_[prompt="What do you want to tweet?"])
  #_[canonical="tweet"]
  #_[confirmation="tweet $status"]
  #[doc="post a tweet"];
}"""

BING_MANIFEST = {
    "module_type": "org.thingpedia.v2",
    "params": {},
    "auth": {"type": "none"},
    "name": "Bing Search",
    "description": "Search the web with Bing",
    "queries": {
        "web_search": {
            "args": [
                {"name": "query", "type": "String", "is_input": True, "required": True, "question": "What do you want to search?"},
                {"name": "title", "type": "String", "is_input": False, "required": False, "question": ""},
            ],
            "is_list": True,
            "poll_interval": 0,
            "canonical": "web search on bing",
            "confirmation": "websites matching $query on bing",
            "formatted": [],
            "doc": "search the web",
        }
    },
    "actions": {},
}


class Seeder:
    """Inserts rows for tests."""

    def __init__(self, db):
        self.db = db

    def org(self, name="Test Org", developer_key="test-key", is_admin=False):
        org = models.Organization(name=name, developer_key=developer_key, is_admin=is_admin)
        self.db.add(org)
        self.db.commit()
        return org

    def device(
        self,
        kind,
        owner,
        code=None,
        developer_version=1,
        approved_version=1,
        downloadable=True,
        category="online",
        subcategory="service",
        name=None,
        factory=None,
        kinds=(),
        discovery=(),
        codes=None,
    ):
        if code is None:
            code = json.dumps({**BING_MANIFEST, "name": name or kind})
        device = models.DeviceClass(
            primary_kind=kind,
            owner=owner.id,
            name=name or kind,
            description=f"Description of {kind}",
            category=category,
            subcategory=subcategory,
            downloadable=downloadable,
            developer_version=developer_version,
            approved_version=approved_version,
        )
        self.db.add(device)
        self.db.flush()

        codes = dict(codes or {})
        for version in {developer_version, approved_version}:
            if version is not None:
                codes.setdefault(version, code)
        for version, version_code in codes.items():
            self.db.add(models.DeviceCodeVersion(
                device_id=device.id,
                version=version,
                code=version_code,
                factory=json.dumps(factory) if factory is not None else None,
            ))
        for kind_name, is_child in kinds:
            self.db.add(models.DeviceClassKind(device_id=device.id, kind=kind_name, is_child=is_child))
        for discovery_type, service in discovery:
            self.db.add(models.DeviceDiscoveryService(device_id=device.id, discovery_type=discovery_type, service=service))
        self.db.commit()
        return device

    def schema(self, kind, owner, channels, kind_type="primary", developer_version=1, approved_version=1, canonicals=None):
        schema = models.DeviceSchema(
            kind=kind,
            kind_type=kind_type,
            kind_canonical=kind.split(".")[-1],
            owner=owner.id,
            developer_version=developer_version,
            approved_version=approved_version,
        )
        self.db.add(schema)
        self.db.flush()
        for version in {developer_version, approved_version}:
            if version is None:
                continue
            for channel in channels:
                self.db.add(models.DeviceSchemaChannel(schema_id=schema.id, version=version, **channel))
            for canonical in canonicals or []:
                self.db.add(models.DeviceSchemaChannelCanonical(schema_id=schema.id, version=version, **canonical))
        self.db.commit()
        return schema

    def example(self, utterance, target_code, schema=None, language="en", name=None, **kwargs):
        example = models.ExampleUtterance(
            schema_id=schema.id if schema is not None else None,
            is_base=kwargs.pop("is_base", True),
            language=language,
            utterance=utterance,
            preprocessed=kwargs.pop("preprocessed", utterance),
            target_code=target_code,
            name=name,
            **kwargs,
        )
        self.db.add(example)
        self.db.commit()
        return example


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seed(db_session):
    return Seeder(db_session)


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client with database dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    test_client = TestClient(app)
    yield test_client
    test_client.close()

    app.dependency_overrides.clear()
