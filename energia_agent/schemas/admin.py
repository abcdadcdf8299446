from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ResetUserRequest(BaseModel):
    number: str = Field(min_length=1)

    @field_validator("number", mode="before")
    @classmethod
    def strip_jid_suffix(cls, value: object) -> object:
        # Accept "5567999999999@s.whatsapp.net" as well as the bare number.
        if isinstance(value, (int, float)):
            value = str(int(value))
        if isinstance(value, str):
            return value.strip().split("@")[0]
        return value


class ResetUserResponse(BaseModel):
    success: str
    stage: int


class HealthResponse(BaseModel):
    status: str
    whatsapp: Optional[dict] = None
    in_flight: int = 0
