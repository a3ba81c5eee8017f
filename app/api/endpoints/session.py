from typing import List

from fastapi import APIRouter, Request, Response, status

from app.core.config import settings
from app.core.errors import Unauthenticated
from app.core.session_auth import (
    AUTH_COOKIE_NAME,
    NONCE_CONTEXT_COOKIE_NAME,
    check_session,
    issue_nonce,
    new_nonce_context,
    verify_sign_in,
)
import app.schemas.auth as schemas

router = APIRouter()
group_tags: List[str] = ["Session"]


def _set_cookie(response: Response, name: str, value: str, max_age: int) -> None:
    response.set_cookie(
        name,
        value,
        max_age=max_age,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
        path="/",
    )


@router.post(
    "/nonce",
    tags=group_tags,
    response_model=schemas.NonceResponse,
)
def request_nonce(response: Response) -> schemas.NonceResponse:
    """Generate a single-use nonce and bind it to this browser via an HTTP-only cookie."""
    context_id = new_nonce_context()
    nonce = issue_nonce(context_id)
    _set_cookie(response, NONCE_CONTEXT_COOKIE_NAME, context_id, settings.NONCE_EXPIRY_SECONDS)
    return schemas.NonceResponse(nonce=nonce)


@router.post(
    "/verify",
    tags=group_tags,
    response_model=schemas.AuthResponse,
)
def verify_wallet(body: schemas.VerifyRequest, request: Request, response: Response) -> schemas.AuthResponse:
    """Verify a signed Sign-In with Ethereum message and start a session."""
    expected_domain = settings.SIWE_DOMAIN or request.headers.get("host", "")
    context_id = request.cookies.get(NONCE_CONTEXT_COOKIE_NAME)
    address, token = verify_sign_in(body.message, body.signature, expected_domain, context_id)

    response.delete_cookie(NONCE_CONTEXT_COOKIE_NAME, path="/")
    _set_cookie(response, AUTH_COOKIE_NAME, token, settings.ACCESS_TOKEN_EXPIRE_SECONDS)
    return schemas.AuthResponse(success=True, address=address)


@router.post(
    "/logout",
    tags=group_tags,
    status_code=status.HTTP_200_OK,
)
def logout(request: Request, response: Response) -> dict:
    if not request.cookies.get(AUTH_COOKIE_NAME):
        raise Unauthenticated()
    response.delete_cookie(AUTH_COOKIE_NAME, path="/")
    return {"success": True, "message": "Logged out"}


@router.get(
    "/me",
    tags=group_tags,
    response_model=schemas.MeResponse,
)
def me(request: Request) -> schemas.MeResponse:
    address = check_session(request.cookies.get(AUTH_COOKIE_NAME))
    return schemas.MeResponse(authenticated=True, address=address)
