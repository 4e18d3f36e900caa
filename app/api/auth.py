from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from app.api.deps import (
    get_audit_trail,
    get_current_user,
    get_login_flow,
    get_request_ip,
    get_session_manager,
    get_throttle_identity,
    get_user_store,
)
from app.models.user import User
from app.schemas.auth import (
    AccountUpdate,
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    SignupRequest,
    TokenResponse,
    UserOut,
)
from app.services.audit import AuditTrail
from app.services.auth import AuthError
from app.services.login import InvalidCredentialsError, LoginFlow, RateLimitedError
from app.services.sessions import SessionManager, SessionTokens
from app.services.users import DuplicateUserError, UserStore

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_response(tokens: SessionTokens) -> TokenResponse:
    return TokenResponse(access_token=tokens.access_token, refresh_token=tokens.refresh_token)


@router.post("/login", response_model=TokenResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    flow: LoginFlow = Depends(get_login_flow),
) -> TokenResponse:
    ip = await get_request_ip(request)
    try:
        tokens = await flow.login(
            await get_throttle_identity(request, payload.email),
            payload.email,
            payload.password,
            ip=ip,
            user_agent=request.headers.get("user-agent"),
        )
    except RateLimitedError as exc:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts",
        ) from exc
    except InvalidCredentialsError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": str(exc), "email": exc.email},
        ) from exc
    return _token_response(tokens)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    payload: RefreshRequest,
    request: Request,
    sessions: SessionManager = Depends(get_session_manager),
) -> TokenResponse:
    try:
        tokens = await sessions.refresh(
            payload.refresh_token,
            ip=await get_request_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except AuthError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    return _token_response(tokens)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    payload: LogoutRequest,
    sessions: SessionManager = Depends(get_session_manager),
) -> Response:
    await sessions.close(payload.refresh_token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    payload: SignupRequest,
    request: Request,
    users: UserStore = Depends(get_user_store),
    sessions: SessionManager = Depends(get_session_manager),
    audit: AuditTrail = Depends(get_audit_trail),
) -> TokenResponse:
    try:
        user = await users.create(payload.email, payload.password, payload.username)
    except DuplicateUserError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    await audit.account_changed(user.id, "create", None, UserOut.model_validate(user))
    tokens = await sessions.open(
        user,
        ip=await get_request_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return _token_response(tokens)


@router.get("/account", response_model=UserOut)
async def account(user: User = Depends(get_current_user)) -> User:
    return user


@router.patch("/account", response_model=UserOut)
async def update_account(
    payload: AccountUpdate,
    user: User = Depends(get_current_user),
    users: UserStore = Depends(get_user_store),
    audit: AuditTrail = Depends(get_audit_trail),
) -> User:
    before = UserOut.model_validate(user).model_dump(mode="json")
    try:
        updated = await users.update_account(
            user, payload.email, payload.username, payload.password
        )
    except DuplicateUserError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    after = UserOut.model_validate(updated).model_dump(mode="json")
    if payload.password:
        after["password_changed"] = True
    await audit.account_changed(updated.id, "update", before, after)
    return updated
