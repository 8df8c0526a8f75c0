"""Device queries.

Every function takes the session explicitly. ``scope`` is the caller's
authorization scope as computed by ``organizations.scope_of``.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from almond_cloud.db.models import DeviceClass, DeviceClassKind, DeviceCodeVersion, DeviceDiscoveryService
from almond_cloud.db.organizations import visible_version
from almond_cloud.errors import NotFoundError


def device_summary(device: DeviceClass) -> Dict[str, Any]:
    """Public fields of a device, as returned by search and list."""
    return {
        "primary_kind": device.primary_kind,
        "name": device.name,
        "description": device.description,
        "category": device.category,
        "subcategory": device.subcategory,
        "website": device.website,
        "repository": device.repository,
        "license": device.license,
    }


def _with_code(device: DeviceClass, code: DeviceCodeVersion, **extra) -> Dict[str, Any]:
    row = device_summary(device)
    row.update(
        id=device.id,
        version=code.version,
        approved_version=device.approved_version,
        developer_version=device.developer_version,
        downloadable=device.downloadable,
        code=code.code,
        factory=code.factory,
    )
    row.update(extra)
    return row


def _visible(db: Session, scope: Optional[int]):
    version = visible_version(DeviceClass, scope)
    return db.query(DeviceClass).filter(version.isnot(None))


def _visible_with_code(db: Session, scope: Optional[int]):
    version = visible_version(DeviceClass, scope)
    return (
        db.query(DeviceClass, DeviceCodeVersion)
        .join(
            DeviceCodeVersion,
            and_(
                DeviceCodeVersion.device_id == DeviceClass.id,
                DeviceCodeVersion.version == version,
            ),
        )
    )


def get_download_version(db: Session, kind: str, scope: Optional[int]) -> Dict[str, Any]:
    """Downloadable flag, approved version and maximum visible version of a device."""
    version = visible_version(DeviceClass, scope)
    row = (
        db.query(DeviceClass.downloadable, DeviceClass.approved_version, version.label("version"))
        .filter(DeviceClass.primary_kind == kind)
        .first()
    )
    if row is None:
        raise NotFoundError()
    return {
        "downloadable": row.downloadable,
        "approved_version": row.approved_version,
        "version": row.version,
    }


def get_full_code_by_primary_kind(db: Session, kind: str, scope: Optional[int]) -> List[Dict[str, Any]]:
    rows = _visible_with_code(db, scope).filter(DeviceClass.primary_kind == kind).all()
    return [_with_code(device, code) for device, code in rows]


def get_by_fuzzy_search(db: Session, q: str, scope: Optional[int]) -> List[Dict[str, Any]]:
    pattern = f"%{q}%"
    query = _visible(db, scope)
    devices = (
        query.filter(
            or_(
                DeviceClass.name.ilike(pattern),
                DeviceClass.description.ilike(pattern),
                DeviceClass.primary_kind.ilike(pattern),
            )
        )
        .order_by(DeviceClass.name)
        .all()
    )
    return [device_summary(d) for d in devices]


def get_by_category(db: Session, category: str, scope: Optional[int], offset: int, limit: int) -> List[Dict[str, Any]]:
    query = _visible(db, scope)
    devices = (
        query.filter(DeviceClass.category == category)
        .order_by(DeviceClass.name)
        .offset(offset)
        .limit(limit)
        .all()
    )
    return [device_summary(d) for d in devices]


def get_by_subcategory(db: Session, subcategory: str, scope: Optional[int], offset: int, limit: int) -> List[Dict[str, Any]]:
    query = _visible(db, scope)
    devices = (
        query.filter(DeviceClass.subcategory == subcategory)
        .order_by(DeviceClass.name)
        .offset(offset)
        .limit(limit)
        .all()
    )
    return [device_summary(d) for d in devices]


def get_all_approved(db: Session, scope: Optional[int], offset: int, limit: int) -> List[Dict[str, Any]]:
    query = _visible(db, scope)
    devices = query.order_by(DeviceClass.name).offset(offset).limit(limit).all()
    return [device_summary(d) for d in devices]


def get_by_category_with_code(db: Session, category: str, scope: Optional[int]) -> List[Dict[str, Any]]:
    rows = _visible_with_code(db, scope).filter(DeviceClass.category == category).order_by(DeviceClass.name).all()
    return [_with_code(device, code) for device, code in rows]


def get_by_subcategory_with_code(db: Session, subcategory: str, scope: Optional[int]) -> List[Dict[str, Any]]:
    rows = _visible_with_code(db, scope).filter(DeviceClass.subcategory == subcategory).order_by(DeviceClass.name).all()
    return [_with_code(device, code) for device, code in rows]


def get_all_approved_with_code(db: Session, scope: Optional[int]) -> List[Dict[str, Any]]:
    rows = _visible_with_code(db, scope).order_by(DeviceClass.name).all()
    return [_with_code(device, code) for device, code in rows]


def get_devices_for_setup(db: Session, kinds: List[str], scope: Optional[int]) -> List[Dict[str, Any]]:
    """
    Devices that can be configured to serve each of ``kinds``.

    A device serves a kind if it is its primary kind, or if it declares it as
    a non-child kind. Each row carries the requested kind as ``for_kind``.
    """
    result = []
    rows = _visible_with_code(db, scope).filter(DeviceClass.primary_kind.in_(kinds)).order_by(DeviceClass.id).all()
    for device, code in rows:
        result.append(_with_code(device, code, for_kind=device.primary_kind))

    rows = (
        _visible_with_code(db, scope)
        .add_columns(DeviceClassKind.kind)
        .join(DeviceClassKind, DeviceClassKind.device_id == DeviceClass.id)
        .filter(DeviceClassKind.kind.in_(kinds), DeviceClassKind.is_child.is_(False))
        .order_by(DeviceClass.id)
        .all()
    )
    for device, code, kind in rows:
        result.append(_with_code(device, code, for_kind=kind))
    return result


# ---- discovery directory ----

def get_by_primary_kind(db: Session, kind: str) -> Optional[DeviceClass]:
    return db.query(DeviceClass).filter(DeviceClass.primary_kind == kind).first()


def get_by_any_kind(db: Session, kind: str) -> List[DeviceClass]:
    """Devices whose primary kind or any secondary kind equals ``kind``."""
    return (
        db.query(DeviceClass)
        .outerjoin(DeviceClassKind, DeviceClassKind.device_id == DeviceClass.id)
        .filter(or_(DeviceClass.primary_kind == kind, DeviceClassKind.kind == kind))
        .distinct()
        .order_by(DeviceClass.id)
        .all()
    )


def get_by_discovery_service(db: Session, discovery_type: str, service: str) -> List[DeviceClass]:
    return (
        db.query(DeviceClass)
        .join(DeviceDiscoveryService, DeviceDiscoveryService.device_id == DeviceClass.id)
        .filter(
            DeviceDiscoveryService.discovery_type == discovery_type,
            DeviceDiscoveryService.service == service,
        )
        .order_by(DeviceClass.id)
        .all()
    )


def get_all_discovery_services(db: Session, device_id: int) -> List[DeviceDiscoveryService]:
    return (
        db.query(DeviceDiscoveryService)
        .filter(DeviceDiscoveryService.device_id == device_id)
        .all()
    )
