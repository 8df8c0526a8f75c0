"""
Device Discovery

Maps a local-discovery payload (a bluetooth scan result or a UPnP
announcement) to the kind of the device that should handle it.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from almond_cloud.db import devices as device_model
from almond_cloud.db.models import DeviceClass
from almond_cloud.errors import BadRequestError

logger = logging.getLogger(__name__)

GENERIC_BLUETOOTH_KIND = "org.thingpedia.builtin.bluetooth.generic"
GENERIC_UPNP_KIND = "org.thingpedia.builtin.upnp.generic"


class DiscoveryDatabase:
    """Discovery directory backed by the device tables."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_discovery_service(self, discovery_type: str, service: str) -> List[DeviceClass]:
        return device_model.get_by_discovery_service(self.db, discovery_type, service)

    def get_all_discovery_services(self, device_id: int):
        return device_model.get_all_discovery_services(self.db, device_id)

    def get_by_any_kind(self, kind: str) -> List[DeviceClass]:
        # "bluetooth-<service>" and "upnp-<service>" are discovery services spelled as kinds
        if kind.startswith("bluetooth-"):
            return self.get_by_discovery_service("bluetooth", kind[len("bluetooth-"):])
        if kind.startswith("upnp-"):
            return self.get_by_discovery_service("upnp", kind[len("upnp-"):])
        return device_model.get_by_any_kind(self.db, kind)

    def get_all_kinds(self, device_id: int) -> List[Dict[str, str]]:
        return [
            {"kind": f"{service.discovery_type}-{service.service}"}
            for service in self.get_all_discovery_services(device_id)
        ]

    def get_by_primary_kind(self, kind: str) -> Optional[DeviceClass]:
        return device_model.get_by_primary_kind(self.db, kind)


class DiscoveryDecoder:
    """Decodes discovery payloads against a :class:`DiscoveryDatabase`."""

    def __init__(self, database: DiscoveryDatabase):
        self.database = database

    def _first_match(self, discovery_type: str, services: List[str]) -> Optional[str]:
        for service in services:
            devices = self.database.get_by_discovery_service(discovery_type, service)
            if devices:
                return devices[0].primary_kind
        return None

    def _decode_bluetooth(self, body: Dict[str, Any]) -> str:
        services = [f"uuid-{uuid.lower()}" for uuid in body.get("uuids") or []]
        if body.get("class") is not None:
            services.append(f"class-{body['class']}")
        return self._first_match("bluetooth", services) or GENERIC_BLUETOOTH_KIND

    def _decode_upnp(self, body: Dict[str, Any]) -> str:
        search_targets = body.get("st") or []
        if isinstance(search_targets, str):
            search_targets = [search_targets]
        services = [st.lower() for st in search_targets]
        return self._first_match("upnp", services) or GENERIC_UPNP_KIND

    def decode(self, body: Dict[str, Any]) -> str:
        if not isinstance(body, dict):
            raise BadRequestError("Invalid discovery payload")
        discovery_type = body.get("kind")
        if discovery_type == "bluetooth":
            kind = self._decode_bluetooth(body)
        elif discovery_type == "upnp":
            kind = self._decode_upnp(body)
        else:
            raise BadRequestError(f"Unsupported discovery protocol {discovery_type}")
        logger.info(f"[Discovery] {discovery_type} payload resolved to {kind}")
        return kind
