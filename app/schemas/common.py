"""
Common Pydantic schemas
"""

from typing import Any, Optional
from pydantic import BaseModel, EmailStr, model_validator

class StandardResponse(BaseModel):
    """Standard API response"""
    success: bool
    message: str
    data: Optional[Any] = None

class ErrorResponse(BaseModel):
    """Error response schema"""
    success: bool = False
    message: str
    error_code: Optional[str] = None
    details: Optional[Any] = None

class PersonRef(BaseModel):
    """Reference to a person: an existing user id, or an email to find or create"""
    user_id: Optional[int] = None
    email: Optional[EmailStr] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None

    class Config:
        extra = "forbid"

    @model_validator(mode="after")
    def check_identifier(self):
        if self.user_id is None and self.email is None:
            raise ValueError("Either user_id or email is required")
        return self
