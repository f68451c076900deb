# app/schemas/token.py
from pydantic import BaseModel, model_validator
from typing import Any, Optional

from app.schemas.message import Role


class TokenPayload(BaseModel):
    """
    Claims issued by the user service.

    Tokens carry either a nested ``{"user": {"id", "role"}}`` object or the
    flat ``sub`` / ``role`` claims; both are normalised to ``sub`` / ``role``.
    """
    sub: str
    role: Role
    exp: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def unwrap_user_claim(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("user"), dict):
            user = data["user"]
            return {"sub": user.get("id"), "role": user.get("role"), "exp": data.get("exp")}
        return data

    @property
    def user_id(self) -> str:
        return self.sub

    model_config = {"from_attributes": True}
