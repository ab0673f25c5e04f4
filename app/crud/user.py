from typing import Optional
from sqlalchemy.orm import Session

from app.crud.base import CRUDBase
from app.models.user import User
from app.schemas.auth import AdminCreate


class CRUDUser(CRUDBase[User, AdminCreate, AdminCreate]):

    def get_by_email(self, db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == email.lower()).first()


user = CRUDUser(User)
