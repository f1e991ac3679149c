import logging

from fastapi import APIRouter, Depends, HTTPException, status

from .. import models, schemas
from ..audit_logger import AuditLogger, get_audit_logger
from ..auth import get_current_user
from ..security import create_access_token, hash_password, verify_password
from ..storage_switch import SwitchingStorage, get_storage

logger = logging.getLogger("tamudastay")

router = APIRouter(prefix="/api/auth", tags=["Auth"])

# Admin and staff accounts are only created by an admin
SELF_SERVICE_ROLES = (models.UserRole.USER, models.UserRole.OWNER)


def _login_response(user: models.User) -> schemas.LoginResponse:
    return schemas.LoginResponse(
        user=schemas.UserRead.model_validate(user),
        access_token=create_access_token(user.id, user.role.value, user.username),
    )


def ensure_unique_identity(storage: SwitchingStorage, username: str, email=None) -> None:
    if storage.get_user_by_username(username) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already exists")
    if email and storage.get_user_by_email(email) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")


@router.post("/register", response_model=schemas.LoginResponse, status_code=status.HTTP_201_CREATED)
def register(
        user_in: schemas.UserCreate,
        storage: SwitchingStorage = Depends(get_storage),
        audit: AuditLogger = Depends(get_audit_logger),
):
    if user_in.role not in SELF_SERVICE_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot register with this role")
    ensure_unique_identity(storage, user_in.username, user_in.email)

    user = storage.create_user({
        "username": user_in.username,
        "email": user_in.email,
        "name": user_in.name,
        "phone": user_in.phone,
        "role": user_in.role,
        "status": models.UserStatus.ACTIVE,
        "hashed_password": hash_password(user_in.password),
    })
    audit.log_user_action(user.id, "register", user.id, description=f"User {user.username} registered")
    logger.info(f"Registered user {user.id} ({user.role.value})")
    return _login_response(user)


@router.post("/login", response_model=schemas.LoginResponse)
def login(
        credentials: schemas.LoginRequest,
        storage: SwitchingStorage = Depends(get_storage),
        audit: AuditLogger = Depends(get_audit_logger),
):
    """Accepts either the username or the email address."""
    user = storage.get_user_by_username(credentials.username)
    if user is None:
        user = storage.get_user_by_email(credentials.username)

    if user is None or not verify_password(credentials.password, user.hashed_password):
        audit.log("login_failed", "user", entity_id=user.id if user else None,
                  description=f"Failed login for {credentials.username}",
                  severity=models.AuditSeverity.WARNING)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if user.status != models.UserStatus.ACTIVE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive")

    audit.log_user_action(user.id, "login", user.id)
    return _login_response(user)


@router.get("/me", response_model=schemas.UserRead)
def read_me(current_user: models.User = Depends(get_current_user)):
    return current_user
