"""Authentication router: all /api/v1/auth/* endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response

from agora.auth.jwt import Authenticator
from agora.auth.roles import RoleResolver
from agora.auth.schemas import (
    LoginRequest,
    RegisterRequest,
    RegisterResponse,
    ResendActivationRequest,
    TokenResponse,
)
from agora.auth.service import authenticate
from agora.config import get_settings
from agora.dependencies import get_authenticator, get_invitation_workflow, get_roles, get_storage
from agora.errors import InputValidationError, NotFoundError
from agora.storage import Storage
from agora.users.invitation import InvitationWorkflow

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    body: RegisterRequest,
    workflow: InvitationWorkflow = Depends(get_invitation_workflow),  # noqa: B008
    roles: RoleResolver = Depends(get_roles),  # noqa: B008
) -> RegisterResponse:
    """Create an inactive account and email its activation link."""
    registration = await workflow.register(
        name=body.name,
        email=body.email,
        password=body.password,
        age=body.age,
        gender=body.gender,
        role_level=roles.resolve(get_settings().default_role),
    )
    user = registration.user
    return RegisterResponse(id=user.id, name=user.name, email=user.email, state=registration.state.value)


@router.put("/activate/{token}", status_code=204)
async def activate(
    token: str,
    workflow: InvitationWorkflow = Depends(get_invitation_workflow),  # noqa: B008
) -> Response:
    """Redeem an activation link. Unknown, used and expired links all answer 404."""
    await workflow.activate(token)
    return Response(status_code=204)


@router.post("/resend-activation", status_code=202)
async def resend_activation(
    body: ResendActivationRequest,
    workflow: InvitationWorkflow = Depends(get_invitation_workflow),  # noqa: B008
) -> dict[str, str]:
    """Send a fresh activation link. The answer is the same whether or not the account exists."""
    try:
        await workflow.resend(body.email)
    except (NotFoundError, InputValidationError) as e:
        logger.info("activation_resend_skipped", reason=type(e).__name__)
    return {"message": "If the account exists and is not yet active, a new link has been sent."}


@router.post("/token", response_model=TokenResponse)
async def issue_token(
    body: LoginRequest,
    storage: Storage = Depends(get_storage),  # noqa: B008
    authenticator: Authenticator = Depends(get_authenticator),  # noqa: B008
) -> TokenResponse:
    """Exchange credentials of an activated account for a bearer token."""
    try:
        user = await authenticate(storage.users, body.email, body.password)
    except NotFoundError as e:
        raise HTTPException(status_code=401, detail="Invalid email or password") from e

    return TokenResponse(
        access_token=authenticator.issue_access_token(user.id),
        expires_in=int(authenticator.ttl.total_seconds()),
    )
