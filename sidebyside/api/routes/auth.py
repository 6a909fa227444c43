# sidebyside/api/routes/auth.py
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from sidebyside.api.deps import get_current_user
from sidebyside.config import settings, ANONYMOUS_USER_ID
from sidebyside.core.clock import as_utc
from sidebyside.core.logger import logger
from sidebyside.database import get_db
from sidebyside.models.user import User
from sidebyside.schemas.user import (
    AuthModeResponse,
    CleanupResponse,
    CleanupStatusResponse,
    FigmaCodeResponse,
    FigmaVerifyRequest,
    MagicLinkRequest,
    MagicLinkResponse,
    RefreshRequest,
    TokenResponse,
    UserResponse,
    VerifyTokenRequest,
)
from sidebyside.services import auth_service, mail_service, voting_service
from sidebyside.services.cleanup_service import cleanup_auth_data, cleanup_scheduler
from sidebyside.services.auth_service import IssuedTokens
from sidebyside.services.notification_service import get_notification_service
from sidebyside.services.rate_limit_service import (
    figma_auth_rate_limit,
    magic_link_rate_limit,
    verify_token_rate_limit,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])

REFRESH_COOKIE = "refreshToken"
FIGMA_PLUGIN_HEADER = "SideBySide/1.0"


def set_refresh_cookie(response: Response, refresh_token: str) -> None:
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=refresh_token,
        max_age=settings.refresh_token_expire_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.is_production,
        samesite="strict" if settings.is_production else "lax",
        path="/",
    )


def clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(
        key=REFRESH_COOKIE,
        httponly=True,
        secure=settings.is_production,
        samesite="strict" if settings.is_production else "lax",
        path="/",
    )


def refresh_token_from_cookie(request: Request) -> Optional[str]:
    # Starlette keeps the last duplicate, stale cookies come first
    return request.cookies.get(REFRESH_COOKIE) or None


def token_response(tokens: IssuedTokens, include_refresh: bool = False) -> TokenResponse:
    return TokenResponse(
        access_token=tokens.access_token,
        user=UserResponse.model_validate(tokens.user),
        is_anonymous=tokens.user.id == ANONYMOUS_USER_ID,
        refresh_token=tokens.refresh_token if include_refresh else None,
    )


@router.get("/mode", response_model=AuthModeResponse)
def get_auth_mode():
    return AuthModeResponse(auth_mode=settings.auth_mode, is_anonymous=settings.is_anonymous_mode)


@router.post(
    "/magic-link",
    response_model=MagicLinkResponse,
    dependencies=[Depends(magic_link_rate_limit)],
)
def request_magic_link(data: MagicLinkRequest, response: Response, db: Session = Depends(get_db)):
    """Email a login link, or log in right away with auto-approve"""
    if settings.is_anonymous_mode:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Magic links are disabled in anonymous mode"
        )

    if settings.auto_approve_sessions:
        user = auth_service.get_or_create_user(db, data.email)
        tokens = auth_service.create_session(db, user)
        set_refresh_cookie(response, tokens.refresh_token)
        logger.info(f"Session auto-approved for {user.email}")
        return MagicLinkResponse(
            message="Logged in",
            access_token=tokens.access_token,
            user=UserResponse.model_validate(user),
            return_to=data.return_to,
        )

    auth_service.get_or_create_user(db, data.email)
    token, magic_token = auth_service.create_magic_token(db, data.email)
    link = auth_service.build_magic_link(token, data.return_to)

    try:
        mail_service.send_magic_link(magic_token.user_email, link)
    except Exception:
        logger.exception(f"Failed to send magic link to {magic_token.user_email}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send magic link"
        )

    return MagicLinkResponse(
        message="Magic link sent",
        expires_at=as_utc(magic_token.expires_at),
    )


@router.post(
    "/verify-token",
    response_model=TokenResponse,
    dependencies=[Depends(verify_token_rate_limit)],
)
def verify_magic_link(data: VerifyTokenRequest, response: Response, db: Session = Depends(get_db)):
    user = auth_service.verify_magic_token(db, data.token)
    tokens = auth_service.create_session(db, user)
    set_refresh_cookie(response, tokens.refresh_token)

    logger.info(f"User {user.id} logged in with magic link")
    return token_response(tokens)


@router.post("/refresh", response_model=TokenResponse)
def refresh(
    request: Request,
    response: Response,
    data: Optional[RefreshRequest] = Body(default=None),
    db: Session = Depends(get_db)
):
    """Rotate the session behind a refresh token"""
    refresh_token = refresh_token_from_cookie(request) or (data.refresh_token if data else None)

    tokens = auth_service.rotate_session(db, refresh_token)

    set_refresh_cookie(response, tokens.refresh_token)
    return token_response(tokens)


@router.post("/logout")
def logout(request: Request, response: Response, db: Session = Depends(get_db)):
    refresh_token = refresh_token_from_cookie(request)
    if refresh_token:
        auth_service.delete_session(db, refresh_token)

    clear_refresh_cookie(response)
    return {"success": True}


@router.get("/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.get("/figma-code", response_model=FigmaCodeResponse)
def get_figma_code(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """One-time code the user types into the Figma plugin"""
    code, figma_code = auth_service.create_figma_code(db, current_user)
    return FigmaCodeResponse(code=code, expires_at=as_utc(figma_code.expires_at))


@router.post(
    "/figma-verify",
    response_model=TokenResponse,
    dependencies=[Depends(figma_auth_rate_limit)],
)
def verify_figma_code(
    request: Request,
    data: Optional[FigmaVerifyRequest] = Body(default=None),
    db: Session = Depends(get_db)
):
    if request.headers.get("x-figma-plugin") != FIGMA_PLUGIN_HEADER \
            or "Figma" not in request.headers.get("user-agent", ""):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Request must come from the Figma plugin"
        )

    if settings.is_anonymous_mode:
        user = auth_service.get_or_create_anonymous_user(db)
    else:
        if not data or not data.code:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Code is required"
            )
        user = auth_service.verify_figma_code(db, data.code)

    tokens = auth_service.create_session(db, user)
    logger.info(f"Figma plugin session created for {user.id}")
    return token_response(tokens, include_refresh=True)


@router.post("/cleanup", response_model=CleanupResponse)
def cleanup(
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Drop expired auth rows and announce finished votings"""
    counts = cleanup_auth_data(db)

    finished = voting_service.claim_finished_votings(db)
    notifier = get_notification_service()
    for voting in finished:
        background_tasks.add_task(notifier.notify_voting_completed, voting.id, voting.title)

    logger.info(f"Cleanup triggered by {current_user.id}")
    return CleanupResponse(
        message="Cleanup completed",
        notified_votings=len(finished),
        **counts,
    )


@router.get("/cleanup/status", response_model=CleanupStatusResponse)
def cleanup_status(current_user: User = Depends(get_current_user)):
    return CleanupStatusResponse(**cleanup_scheduler.status())
