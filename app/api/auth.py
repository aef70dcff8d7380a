"""
Auth API 端點

註冊、登入、登出、查詢目前使用者，以及變更密碼 / email
"""

import logging

from fastapi import APIRouter, Depends, status

from app.api.deps import validated_body
from app.lib.rate_limit import api_rate_limiter, auth_rate_limiter, password_rate_limiter, rate_limit
from app.middleware.auth_gate import AuthContext, get_bearer_token, require_auth
from app.schemas.common import ok
from app.services.identity import IdentityService, get_identity_service, to_jsonable
from app.utils.validators import (
    normalize_email,
    validate_credentials,
    validate_email_change,
    validate_password_change,
)

router = APIRouter(prefix="/api/auth", tags=["身分驗證"])
logger = logging.getLogger(__name__)


@router.post(
    "/signup",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit(auth_rate_limiter))],
)
async def signup(
    payload: dict = Depends(validated_body(validate_credentials)),
    identity: IdentityService = Depends(get_identity_service),
):
    """以 email + 密碼註冊，回傳 user 與 session"""
    data = await identity.sign_up(payload["email"], payload["password"])
    return ok(data)


@router.post("/signin", dependencies=[Depends(rate_limit(auth_rate_limiter))])
async def signin(
    payload: dict = Depends(validated_body(validate_credentials)),
    identity: IdentityService = Depends(get_identity_service),
):
    data = await identity.sign_in(payload["email"], payload["password"])
    return ok(data)


@router.post("/signout")
async def signout(
    token: str = Depends(get_bearer_token),
    identity: IdentityService = Depends(get_identity_service),
):
    await identity.sign_out(token)
    return ok(message="Signed out successfully")


@router.get("/user")
def current_user(ctx: AuthContext = Depends(require_auth)):
    return ok({"user": to_jsonable(ctx.user)})


@router.put("/password", dependencies=[Depends(rate_limit(password_rate_limiter))])
async def change_password(
    ctx: AuthContext = Depends(require_auth),
    payload: dict = Depends(validated_body(validate_password_change)),
    identity: IdentityService = Depends(get_identity_service),
):
    """
    變更密碼

    - 以目前密碼重新登入確認身分後才套用新密碼
    - 比一般 API 更嚴格的速率限制
    """
    await identity.change_password(
        ctx.access_token, ctx.email, payload["currentPassword"], payload["newPassword"]
    )
    return ok(message="Password updated successfully")


@router.put("/email", dependencies=[Depends(rate_limit(api_rate_limiter))])
async def change_email(
    ctx: AuthContext = Depends(require_auth),
    payload: dict = Depends(validated_body(validate_email_change)),
    identity: IdentityService = Depends(get_identity_service),
):
    """
    變更 email

    身分提供者會寄送驗證信到新地址；驗證完成前 email 不會改變。
    """
    await identity.change_email(ctx.access_token, normalize_email(payload["newEmail"]))
    return ok(message="Verification email sent. Please check your new email address to confirm the change.")
