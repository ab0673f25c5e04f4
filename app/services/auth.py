import logging

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.core.constants import RoleEnum
from app.core.security import get_password_hash, verify_password, create_access_token
from app.crud.user import user as crud_user
from app.models.user import User
from app.schemas.auth import AdminCreate, AdminUser, LoginResponse, Token

logger = logging.getLogger(__name__)


class AuthService:

    def create_admin(self, db: Session, *, admin_in: AdminCreate) -> User:
        if crud_user.get_by_email(db, email=admin_in.email):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Admin with this email already exists",
            )

        admin = crud_user.create(db, obj_in={
            "email": admin_in.email,
            "hashed_password": get_password_hash(admin_in.password),
            "role": RoleEnum.ADMIN.value,
        })
        logger.info(f"Created admin account {admin.email}")
        return admin

    def login(self, db: Session, *, email: str, password: str) -> LoginResponse:
        user = crud_user.get_by_email(db, email=email)
        if not user or not verify_password(password, user.hashed_password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect email or password",
            )

        access_token = create_access_token(
            data={"user_id": user.id, "role": user.role},
            email=user.email,
        )
        return LoginResponse(
            token=Token(access_token=access_token, token_type="bearer"),
            user=AdminUser.model_validate(user),
        )


auth_service = AuthService()
