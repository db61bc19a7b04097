import uuid
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, field_validator

class UserCreate(BaseModel):
    """Cadastro de candidato. O email é guardado em minúsculas."""
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

class UserResponse(BaseModel):
    id: uuid.UUID
    email: EmailStr
    is_active: bool
    created_at: datetime | None = None

    class Config:
        from_attributes = True

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
