from fastapi import APIRouter, Depends, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from familyos.modules.auth.schemas import (
    LoginRequest, RegisterRequest, TokenResponse, RegisterResponse, PasswordResetRequest
)
from familyos.modules.auth.service import AuthService
from familyos.core.dependencies import get_current_user_id, get_session_auth_service
from typing import Dict

router = APIRouter(prefix="/auth", tags=["auth"])

# Security scheme for JWT Bearer token
security = HTTPBearer()


def get_current_token(
    credentials: HTTPAuthorizationCredentials = Security(security)
) -> str:
    """Extract JWT token from Authorization header"""
    return credentials.credentials


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    register_data: RegisterRequest,
    service: AuthService = Depends(get_session_auth_service)
):
    """Register a new user"""
    return service.register(register_data)


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    service: AuthService = Depends(get_session_auth_service)
):
    """Login and get access token"""
    return service.login(login_data)


@router.post("/logout", status_code=200)
async def logout(
    token: str = Depends(get_current_token),
    service: AuthService = Depends(get_session_auth_service)
):
    """Logout and invalidate token"""
    service.logout(token)
    return {"message": "Logged out successfully"}


@router.post("/password-reset", status_code=202)
async def request_password_reset(
    reset_data: PasswordResetRequest,
    service: AuthService = Depends(get_session_auth_service)
):
    """Send a password reset link (always 202 so addresses cannot be enumerated)"""
    service.request_password_reset(reset_data)
    return {"message": "If the address is registered, a reset link has been sent"}


@router.get("/me")
async def get_current_user(
    current_user: Dict = Depends(get_current_user_id),
):
    """Get current authenticated user"""
    return current_user
