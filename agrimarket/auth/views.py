from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import EmailStr, TypeAdapter, ValidationError
from typing import Dict, Any

from agrimarket.utils.security import require_user
from agrimarket.utils.rate_limit import optional_rate_limit
from .service import check_duplicate_account

api_router = APIRouter(prefix="/api/v1/auth", tags=["Auth API"])

_email_adapter = TypeAdapter(EmailStr)

@api_router.get("/me")
def api_me(user: Dict[str, Any] = Depends(require_user)):
    return {"id": user.get("id"), "email": user.get("email"), "role": user.get("role")}

@api_router.get("/duplicate-check", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def api_duplicate_check(email: str):
    """Indique si un compte existe déjà pour cet email, et son rôle (retailer/wholesaler/admin)."""
    try:
        email = _email_adapter.validate_python(email)
    except ValidationError:
        return JSONResponse(status_code=400, content={"success": False, "error": "Email invalide"})
    result = check_duplicate_account(email)
    if not result.success:
        return JSONResponse(status_code=502, content=result.to_dict())
    return result.to_dict()
