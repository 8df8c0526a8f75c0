from typing import List

from sqlalchemy.orm import Session

from almond_cloud.db.models import StringType


def get_all(db: Session, language: str) -> List[StringType]:
    return db.query(StringType).filter(StringType.language == language).order_by(StringType.type_name).all()
