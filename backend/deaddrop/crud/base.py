from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from deaddrop.db.base_class import Base

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    def __init__(self, model: Type[ModelType]):
        """
        CRUD object with default methods to read and delete rows.

        **Parameters**

        * `model`: A SQLAlchemy model class
        """
        self.model = model

    def get(self, db: Session, id: Any) -> Optional[ModelType]:
        return db.get(self.model, id)

    def count(self, db: Session) -> int:
        return db.query(self.model).count()
