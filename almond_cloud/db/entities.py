"""Entity type and entity value queries."""

from typing import List

from sqlalchemy.orm import Session

from almond_cloud.db.models import EntityLexicon, EntityName, EntityNameSnapshot
from almond_cloud.errors import NotFoundError


def lookup_with_type(db: Session, language: str, entity_type: str, search_term: str) -> List[EntityLexicon]:
    """Values of ``entity_type`` whose canonical form contains every search word."""
    query = db.query(EntityLexicon).filter(
        EntityLexicon.language == language,
        EntityLexicon.entity_id == entity_type,
    )
    for word in search_term.lower().split():
        query = query.filter(EntityLexicon.entity_canonical.ilike(f"%{word}%"))
    return query.order_by(EntityLexicon.entity_name).all()


def get(db: Session, entity_type: str, language: str) -> EntityName:
    entity = db.query(EntityName).filter(EntityName.id == entity_type, EntityName.language == language).first()
    if entity is None and language != "en":
        entity = db.query(EntityName).filter(EntityName.id == entity_type, EntityName.language == "en").first()
    if entity is None:
        raise NotFoundError(f"Invalid entity type {entity_type}")
    return entity


def get_all(db: Session, language: str = "en") -> List[EntityName]:
    return db.query(EntityName).filter(EntityName.language == language).order_by(EntityName.id).all()


def get_snapshot(db: Session, snapshot_id: int, language: str = "en") -> List[EntityNameSnapshot]:
    return (
        db.query(EntityNameSnapshot)
        .filter(EntityNameSnapshot.snapshot_id == snapshot_id, EntityNameSnapshot.language == language)
        .order_by(EntityNameSnapshot.id)
        .all()
    )
