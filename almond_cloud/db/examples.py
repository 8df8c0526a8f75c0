"""Example utterance queries."""

from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from almond_cloud.db.models import DeviceSchema, ExampleUtterance
from almond_cloud.db.organizations import visible_version
from almond_cloud.errors import NotFoundError


def _to_row(example: ExampleUtterance, kind: Optional[str]) -> Dict[str, Any]:
    return {
        "id": example.id,
        "language": example.language,
        "type": example.type,
        "utterance": example.utterance,
        "preprocessed": example.preprocessed,
        "target_code": example.target_code,
        "click_count": example.click_count,
        "like_count": example.like_count,
        "name": example.name,
        "kind": kind,
    }


def _base_query(db: Session, scope: Optional[int], language: str):
    # examples not attached to a schema are visible to everyone
    version = visible_version(DeviceSchema, scope)
    return (
        db.query(ExampleUtterance, DeviceSchema.kind)
        .outerjoin(DeviceSchema, DeviceSchema.id == ExampleUtterance.schema_id)
        .filter(
            ExampleUtterance.is_base.is_(True),
            ExampleUtterance.language == language,
            or_(ExampleUtterance.schema_id.is_(None), version.isnot(None)),
        )
    )


def get_by_key(db: Session, key: str, scope: Optional[int], language: str) -> List[Dict[str, Any]]:
    """Base examples whose utterance contains every word of ``key``."""
    query = _base_query(db, scope, language)
    for word in key.split():
        query = query.filter(ExampleUtterance.utterance.ilike(f"%{word}%"))
    rows = query.order_by(ExampleUtterance.click_count.desc(), ExampleUtterance.id).all()
    return [_to_row(example, kind) for example, kind in rows]


def get_by_kinds(db: Session, kinds: List[str], scope: Optional[int], language: str) -> List[Dict[str, Any]]:
    rows = (
        _base_query(db, scope, language)
        .filter(DeviceSchema.kind.in_(kinds))
        .order_by(ExampleUtterance.id)
        .all()
    )
    return [_to_row(example, kind) for example, kind in rows]


def get_base_by_language(db: Session, scope: Optional[int], language: str) -> List[Dict[str, Any]]:
    rows = _base_query(db, scope, language).order_by(ExampleUtterance.id).all()
    return [_to_row(example, kind) for example, kind in rows]


def click(db: Session, example_id: int) -> None:
    updated = (
        db.query(ExampleUtterance)
        .filter(ExampleUtterance.id == example_id)
        .update({ExampleUtterance.click_count: ExampleUtterance.click_count + 1}, synchronize_session=False)
    )
    if not updated:
        raise NotFoundError()
    db.commit()
