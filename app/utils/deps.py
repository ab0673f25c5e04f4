from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.cache import CacheManager
from app.core.constants import RoleEnum
from app.core.database import SessionLocal
from app.core.security import decode_access_token
from app.crud.user import user as user_crud
from app.models.user import User
from app.schemas.auth import TokenPayload
from app.services.cache_service import CacheService
from app.services.course import CourseService

http_bearer = HTTPBearer(auto_error=False)

AUTH_COOKIE_NAME = "auth-token"

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_cache(request: Request) -> CacheManager:
    return request.app.state.cache

def get_cache_service(cache: CacheManager = Depends(get_cache)) -> CacheService:
    return CacheService(cache)

def get_course_service(cache_service: CacheService = Depends(get_cache_service)) -> CourseService:
    return CourseService(cache_service.cache, cache_service=cache_service)

def _token_from_request(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(AUTH_COOKIE_NAME)

def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer)
) -> User:
    token = _token_from_request(request, credentials)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    try:
        token_data = TokenPayload(**decode_access_token(token))
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    except ValidationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    user = user_crud.get(db, id=token_data.user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )
    return user

def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != RoleEnum.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user
