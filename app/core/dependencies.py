"""
FastAPI Authentication Dependencies
This module provides FastAPI dependency functions that can be injected into route handlers
to authenticate the calling wallet.
Usage in endpoints:
    @router.get("/protected")
    def protected_route(wallet_address: str = Depends(get_current_user)):
        # wallet_address is the lowercased, verified wallet
        return {"user": wallet_address}
Flow:
1. Client sends either the auth_token session cookie or the X-Wallet-* signed headers
2. FastAPI calls get_current_user() dependency
3. authenticate_request() picks the matching scheme (headers win when present)
4. Returns wallet_address to the route handler
"""

from fastapi import Request

from app.core.session_auth import authenticate_request


def get_current_user(request: Request) -> str:
    """
    returning lowercased wallet address.
    """
    return authenticate_request(request)
