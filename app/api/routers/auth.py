from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Request, Response

from app.api.deps import (
    get_apple_auth_use_case,
    get_current_user,
    get_delete_account_use_case,
    get_google_auth_use_case,
    get_list_sessions_use_case,
    get_logout_session_use_case,
    get_refresh_session_use_case,
    get_update_profile_use_case,
)
from app.api.errors import http_error
from app.api.schemas.auth import (
    AppleAuthRequest,
    AuthBundleResponse,
    AuthUserResponse,
    DeviceFields,
    GoogleAuthRequest,
    LogoutRequest,
    RefreshRequest,
    RefreshResponse,
    SessionListResponse,
    SessionResponse,
    UpdateProfileRequest,
)
from app.application.dto.auth import (
    AuthBundleOutput,
    AuthenticateInput,
    AuthUserOutput,
    LogoutInput,
    ProviderCredential,
    RefreshSessionInput,
    UpdateProfileInput,
)
from app.application.use_cases.auth_common import build_auth_user_output
from app.application.use_cases.authenticate_with_provider import AuthenticateWithProviderUseCase
from app.application.use_cases.delete_account import DeleteAccountUseCase
from app.application.use_cases.list_sessions import ListSessionsUseCase
from app.application.use_cases.logout_session import LogoutSessionUseCase
from app.application.use_cases.refresh_session import RefreshSessionUseCase
from app.application.use_cases.update_profile import UpdateProfileUseCase
from app.domain.entities.session import DeviceInfo
from app.domain.entities.user import User
from app.domain.exceptions import DomainError


router = APIRouter()


def _client_ip(request: Request, x_forwarded_for: str | None) -> str | None:
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip() or None
    return request.client.host if request.client else None


def _device_info(
    req: DeviceFields,
    *,
    request: Request,
    user_agent: str | None,
    x_forwarded_for: str | None,
) -> DeviceInfo:
    return DeviceInfo(
        device_id=req.device_id.strip(),
        device_name=req.device_name,
        device_model=req.device_model,
        os_version=req.os_version,
        app_version=req.app_version,
        push_token=req.push_token,
        ip_address=_client_ip(request, x_forwarded_for),
        user_agent=user_agent,
    )


def _user_response(user: AuthUserOutput) -> AuthUserResponse:
    return AuthUserResponse(
        id=user.id,
        email=user.email,
        email_verified=user.email_verified,
        full_name=user.full_name,
        avatar_url=user.avatar_url,
        timezone=user.timezone,
        locale=user.locale,
        subscription_tier=user.subscription_tier,
        subscription_status=user.subscription_status,
        trial_ends_at=user.trial_ends_at,
        created_at=user.created_at,
        updated_at=user.updated_at,
        phone_number=user.phone_number,
    )


def _bundle_response(output: AuthBundleOutput, response: Response) -> AuthBundleResponse:
    response.status_code = 201 if output.is_new_user else 200
    return AuthBundleResponse(
        user=_user_response(output.user),
        access_token=output.access_token,
        refresh_token=output.refresh_token,
        expires_in=output.expires_in,
        is_new_user=output.is_new_user,
    )


@router.post("/v1/auth/google", response_model=AuthBundleResponse)
def auth_google(
    req: GoogleAuthRequest,
    request: Request,
    response: Response,
    user_agent: str | None = Header(default=None),
    x_forwarded_for: str | None = Header(default=None),
    use_case: AuthenticateWithProviderUseCase = Depends(get_google_auth_use_case),
):
    try:
        output = use_case.execute(
            AuthenticateInput(
                provider="google",
                credential=ProviderCredential(
                    identity_token=req.id_token,
                    access_token=req.access_token,
                ),
                device=_device_info(
                    req,
                    request=request,
                    user_agent=user_agent,
                    x_forwarded_for=x_forwarded_for,
                ),
            )
        )
    except DomainError as exc:
        raise http_error(exc) from exc

    return _bundle_response(output, response)


@router.post("/v1/auth/apple", response_model=AuthBundleResponse)
def auth_apple(
    req: AppleAuthRequest,
    request: Request,
    response: Response,
    user_agent: str | None = Header(default=None),
    x_forwarded_for: str | None = Header(default=None),
    use_case: AuthenticateWithProviderUseCase = Depends(get_apple_auth_use_case),
):
    email_hint = None
    full_name_hint = None
    if req.user is not None:
        email_hint = req.user.email
        if req.user.name is not None:
            parts = [req.user.name.first_name, req.user.name.last_name]
            full_name_hint = " ".join(part.strip() for part in parts if part and part.strip()) or None

    try:
        output = use_case.execute(
            AuthenticateInput(
                provider="apple",
                credential=ProviderCredential(
                    identity_token=req.identity_token,
                    authorization_code=req.authorization_code,
                    email_hint=email_hint,
                    full_name_hint=full_name_hint,
                ),
                device=_device_info(
                    req,
                    request=request,
                    user_agent=user_agent,
                    x_forwarded_for=x_forwarded_for,
                ),
            )
        )
    except DomainError as exc:
        raise http_error(exc) from exc

    return _bundle_response(output, response)


@router.post("/v1/auth/refresh", response_model=RefreshResponse)
def refresh_auth(
    req: RefreshRequest,
    use_case: RefreshSessionUseCase = Depends(get_refresh_session_use_case),
):
    try:
        output = use_case.execute(
            RefreshSessionInput(
                refresh_token=req.refresh_token,
                device_id=req.device_id,
            )
        )
    except DomainError as exc:
        raise http_error(exc) from exc

    return RefreshResponse(
        access_token=output.access_token,
        refresh_token=output.refresh_token,
        expires_in=output.expires_in,
    )


@router.post("/v1/auth/logout", status_code=204)
def logout_auth(
    req: LogoutRequest | None = None,
    current_user: User = Depends(get_current_user),
    use_case: LogoutSessionUseCase = Depends(get_logout_session_use_case),
):
    req = req or LogoutRequest()
    try:
        use_case.execute(
            LogoutInput(
                user_id=current_user.id,
                session_id=req.session_id,
                device_id=req.device_id,
                all_devices=req.all_devices,
            )
        )
    except DomainError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@router.get("/v1/auth/sessions", response_model=SessionListResponse)
def list_sessions(
    current_user: User = Depends(get_current_user),
    use_case: ListSessionsUseCase = Depends(get_list_sessions_use_case),
):
    sessions = use_case.execute(user_id=current_user.id)
    return SessionListResponse(
        sessions=[
            SessionResponse(
                id=session.id,
                device_id=session.device_id,
                device_name=session.device_name,
                device_model=session.device_model,
                last_active_at=session.last_active_at,
                created_at=session.created_at,
                is_current=session.is_current,
            )
            for session in sessions
        ]
    )


@router.delete("/v1/auth/sessions/{session_id}", status_code=204)
def revoke_session(
    session_id: str,
    current_user: User = Depends(get_current_user),
    use_case: LogoutSessionUseCase = Depends(get_logout_session_use_case),
):
    try:
        use_case.execute(LogoutInput(user_id=current_user.id, session_id=session_id))
    except DomainError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@router.get("/v1/auth/me", response_model=AuthUserResponse)
def get_me(current_user: User = Depends(get_current_user)):
    return _user_response(build_auth_user_output(current_user))


@router.patch("/v1/auth/me", response_model=AuthUserResponse)
def update_me(
    req: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    use_case: UpdateProfileUseCase = Depends(get_update_profile_use_case),
):
    try:
        output = use_case.execute(
            UpdateProfileInput(user_id=current_user.id, changes=req.model_dump(exclude_unset=True))
        )
    except DomainError as exc:
        raise http_error(exc) from exc
    return _user_response(output)


@router.delete("/v1/auth/me", status_code=204)
def delete_me(
    current_user: User = Depends(get_current_user),
    use_case: DeleteAccountUseCase = Depends(get_delete_account_use_case),
):
    try:
        use_case.execute(user_id=current_user.id)
    except DomainError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)
