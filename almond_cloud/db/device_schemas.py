"""Schema (function type information) queries."""

from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from almond_cloud.db.models import (
    DeviceSchema,
    DeviceSchemaChannel,
    DeviceSchemaChannelCanonical,
    DeviceSchemaSnapshot,
)
from almond_cloud.db.organizations import visible_version

# (schema id, kind, kind type, visible version)
SchemaRef = Tuple[int, str, str, int]


def _channel_types(channel: DeviceSchemaChannel) -> Dict[str, Any]:
    return {
        "args": list(channel.argnames or []),
        "types": list(channel.types or []),
        "is_input": list(channel.is_input or []),
        "required": list(channel.required or []),
        "is_list": channel.is_list,
        "is_monitorable": channel.is_monitorable,
    }


def _channel_meta(channel: DeviceSchemaChannel, canonical: Optional[DeviceSchemaChannelCanonical]) -> Dict[str, Any]:
    entry = _channel_types(channel)
    entry.update(
        doc=channel.doc,
        confirm=channel.confirm,
        string_values=list(channel.string_values or []),
        canonical=canonical.canonical if canonical else "",
        confirmation=canonical.confirmation if canonical else "",
        confirmation_remote=canonical.confirmation_remote if canonical else "",
        formatted=list(canonical.formatted or []) if canonical else [],
        questions=list(canonical.questions or []) if canonical else [],
        argcanonicals=list(canonical.argcanonicals or []) if canonical else [],
    )
    return entry


def _load_canonicals(db: Session, schema_id: int, version: int, language: str):
    """Localized metadata by function name, falling back to English."""
    languages = [language] if language == "en" else [language, "en"]
    rows = (
        db.query(DeviceSchemaChannelCanonical)
        .filter(
            DeviceSchemaChannelCanonical.schema_id == schema_id,
            DeviceSchemaChannelCanonical.version == version,
            DeviceSchemaChannelCanonical.language.in_(languages),
        )
        .all()
    )
    canonicals = {}
    for row in rows:
        if row.name not in canonicals or row.language == language:
            canonicals[row.name] = row
    return canonicals


def _build_rows(db: Session, refs: Iterable[SchemaRef], language: Optional[str]) -> List[Dict[str, Any]]:
    """Assemble ``{kind, kind_type, triggers, queries, actions}`` rows.

    With a ``language``, each function also carries its localized metadata.
    """
    result = []
    for schema_id, kind, kind_type, version in refs:
        channels = (
            db.query(DeviceSchemaChannel)
            .filter(DeviceSchemaChannel.schema_id == schema_id, DeviceSchemaChannel.version == version)
            .order_by(DeviceSchemaChannel.name)
            .all()
        )
        canonicals = _load_canonicals(db, schema_id, version, language) if language else None

        row = {"id": schema_id, "kind": kind, "kind_type": kind_type, "triggers": {}, "queries": {}, "actions": {}}
        for channel in channels:
            if canonicals is None:
                entry = _channel_types(channel)
            else:
                entry = _channel_meta(channel, canonicals.get(channel.name))
            target = "actions" if channel.channel_type == "action" else "queries"
            row[target][channel.name] = entry
        result.append(row)
    return result


def _visible_refs(db: Session, scope: Optional[int], kinds: Optional[List[str]] = None) -> List[SchemaRef]:
    version = visible_version(DeviceSchema, scope)
    query = db.query(DeviceSchema.id, DeviceSchema.kind, DeviceSchema.kind_type, version.label("version"))
    query = query.filter(version.isnot(None))
    if kinds is not None:
        query = query.filter(DeviceSchema.kind.in_(kinds))
    return [tuple(row) for row in query.order_by(DeviceSchema.kind).all()]


def _snapshot_refs(db: Session, snapshot_id: int, scope: Optional[int]) -> List[SchemaRef]:
    version = visible_version(DeviceSchemaSnapshot, scope)
    query = (
        db.query(
            DeviceSchemaSnapshot.schema_id,
            DeviceSchemaSnapshot.kind,
            DeviceSchemaSnapshot.kind_type,
            version.label("version"),
        )
        .filter(DeviceSchemaSnapshot.snapshot_id == snapshot_id, version.isnot(None))
        .order_by(DeviceSchemaSnapshot.kind)
    )
    return [tuple(row) for row in query.all()]


def get_types_and_names_by_kinds(db: Session, kinds: List[str], scope: Optional[int]) -> List[Dict[str, Any]]:
    return _build_rows(db, _visible_refs(db, scope, kinds), None)


def get_metas_by_kinds(db: Session, kinds: List[str], scope: Optional[int], language: str) -> List[Dict[str, Any]]:
    return _build_rows(db, _visible_refs(db, scope, kinds), language)


def get_all_approved(db: Session, scope: Optional[int]) -> List[Dict[str, Any]]:
    """Kind and canonical name of every visible schema."""
    version = visible_version(DeviceSchema, scope)
    rows = (
        db.query(DeviceSchema.kind, DeviceSchema.kind_canonical)
        .filter(version.isnot(None))
        .order_by(DeviceSchema.kind)
        .all()
    )
    return [{"kind": kind, "kind_canonical": canonical} for kind, canonical in rows]


def get_current_snapshot_types(db: Session, scope: Optional[int]) -> List[Dict[str, Any]]:
    return _build_rows(db, _visible_refs(db, scope), None)


def get_current_snapshot_meta(db: Session, language: str, scope: Optional[int]) -> List[Dict[str, Any]]:
    return _build_rows(db, _visible_refs(db, scope), language)


def get_snapshot_types(db: Session, snapshot_id: int, scope: Optional[int]) -> List[Dict[str, Any]]:
    return _build_rows(db, _snapshot_refs(db, snapshot_id, scope), None)


def get_snapshot_meta(db: Session, snapshot_id: int, language: str, scope: Optional[int]) -> List[Dict[str, Any]]:
    return _build_rows(db, _snapshot_refs(db, snapshot_id, scope), language)
