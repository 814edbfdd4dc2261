"""Authentication endpoints."""
from fastapi import APIRouter, HTTPException, Request, Response

from app.schemas import AdminLoginRequest, SuccessResponse
from app.core.security import ADMIN_COOKIE_NAME, verify_admin_password, create_access_token
from app.core.logging_config import get_logger
from app.core.rate_limit import limiter, RATE_LIMITS
from app.core import config

logger = get_logger(__name__)
router = APIRouter()


@router.post("/admin/login", response_model=SuccessResponse)
@limiter.limit(RATE_LIMITS["admin_write"])
async def admin_login(request: Request, login: AdminLoginRequest, response: Response) -> SuccessResponse:
    """
    Authenticate the admin and set a JWT in an httpOnly cookie.

    The cookie grants access to check-in history, statistics and purging.

    Raises:
        HTTPException: 401 Unauthorized if password is invalid

    Example:
        Request:
            POST /api/v1/auth/admin/login
            {
                "password": "your-secure-password"
            }

        Response (200):
            {
                "success": true,
                "message": "Logged in successfully"
            }
            Set-Cookie: admin_token=eyJhbGc...; HttpOnly; SameSite=Lax

    Security:
        - Token stored in httpOnly cookie (XSS protection)
        - SameSite=Lax (CSRF protection)
        - Secure flag enabled in production (HTTPS only)
    """
    if not verify_admin_password(login.password):
        logger.warning("admin_login_failed")
        raise HTTPException(status_code=401, detail="Invalid password")

    access_token = create_access_token(data={"is_admin": True})

    response.set_cookie(
        key=ADMIN_COOKIE_NAME,
        value=access_token,
        httponly=True,
        secure=config.settings.ENVIRONMENT == "production",
        samesite="lax",
        max_age=config.settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )

    logger.info("admin_login_succeeded")
    return SuccessResponse(success=True, message="Logged in successfully")


@router.post("/admin/logout", response_model=SuccessResponse)
async def admin_logout(response: Response) -> SuccessResponse:
    """Clear the admin cookie. Safe to call when not logged in."""
    response.delete_cookie(key=ADMIN_COOKIE_NAME)
    return SuccessResponse(success=True, message="Logged out successfully")
