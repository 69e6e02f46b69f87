"""
Standardized response utilities
"""

from typing import Any
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.core.errors import DomainError
from app.schemas.common import StandardResponse, ErrorResponse

def success_response(message: str, data: Any = None, status_code: int = 200) -> JSONResponse:
    """Wrap ``data`` in the success envelope"""
    response = StandardResponse(success=True, message=message, data=data)
    return JSONResponse(content=jsonable_encoder(response), status_code=status_code)

def error_response(exc: DomainError) -> JSONResponse:
    """Render a domain error with its stable code and HTTP status"""
    response = ErrorResponse(
        message=exc.message,
        error_code=exc.code.value,
        details=exc.details,
    )
    return JSONResponse(content=jsonable_encoder(response), status_code=exc.status_code)

def dump(schema, obj) -> dict:
    """Serialize an ORM object through a response schema"""
    return schema.model_validate(obj).model_dump(mode="json")
