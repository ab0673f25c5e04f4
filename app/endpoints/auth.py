from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.schemas.auth import AdminCreate, AdminUser, LoginRequest, LoginResponse
from app.schemas.response import APIResponse
from app.services.auth import auth_service
from app.utils import deps

router = APIRouter()


@router.post("/signup", response_model=APIResponse[AdminUser], status_code=status.HTTP_201_CREATED)
def signup(
    *,
    db: Session = Depends(deps.get_db),
    signup_request: AdminCreate
):
    """Create an admin account."""
    new_admin = auth_service.create_admin(db, admin_in=signup_request)
    return APIResponse(message="Admin account created successfully", data=AdminUser.model_validate(new_admin))


@router.post("/login", response_model=APIResponse[LoginResponse])
def login_for_access_token(
    request: LoginRequest,
    db: Session = Depends(deps.get_db)
):
    login_response = auth_service.login(db, email=request.email, password=request.password)
    return APIResponse(message="Login successful", data=login_response)
