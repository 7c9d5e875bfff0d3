from __future__ import annotations

from typing import Any, Dict, Generic, Optional, Type, TypeVar

from sqlalchemy.orm import Session

ModelType = TypeVar("ModelType")


class CRUDBase(Generic[ModelType]):
    """Base CRUD que expone operaciones básicas sobre modelos SQLAlchemy."""

    def __init__(self, model: Type[ModelType]) -> None:
        self.model = model

    def get_by(self, db: Session, **filters: Any) -> Optional[ModelType]:
        return db.query(self.model).filter_by(**filters).first()

    def get_multi_by(self, db: Session, **filters: Any) -> list[ModelType]:
        return db.query(self.model).filter_by(**filters).order_by(self.model.id).all()

    def create(self, db: Session, *, obj_in: Dict[str, Any], commit: bool = True) -> ModelType:
        db_obj = self.model(**obj_in)
        db.add(db_obj)
        if commit:
            db.commit()
            db.refresh(db_obj)
        else:
            db.flush()
        return db_obj

    def update(
        self,
        db: Session,
        *,
        db_obj: ModelType,
        obj_in: Dict[str, Any],
        commit: bool = True,
    ) -> ModelType:
        for field, value in obj_in.items():
            setattr(db_obj, field, value)

        db.add(db_obj)
        if commit:
            db.commit()
            db.refresh(db_obj)
        else:
            db.flush()
        return db_obj

