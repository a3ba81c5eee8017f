from typing import Optional

from pydantic import BaseModel, Field

from app.schemas.my_base_model import CustomBaseModel


class NonceResponse(CustomBaseModel):
    """Response model for nonce generation - output"""

    nonce: str = ""


class VerifyRequest(BaseModel):
    """Request model for wallet verification - input validation"""

    message: Optional[str] = Field(None, description="EIP-4361 sign-in message")
    signature: Optional[str] = Field(None, description="Hex signature of the message")


class AuthResponse(CustomBaseModel):
    """Response model for authentication - output"""

    success: bool = True
    address: str = ""


class MeResponse(CustomBaseModel):
    authenticated: bool = True
    address: str = ""
