from pydantic import BaseModel, Field


class OperatorLogin(BaseModel):
    password: str = Field(..., min_length=1)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
