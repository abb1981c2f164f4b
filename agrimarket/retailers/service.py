from typing import Any, Dict, Optional
from . import repository

def get_current_retailer(user: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Identité détaillant de l'utilisateur courant: {id, name, email, address} ou None."""
    if not user or not user.get("id"):
        return None
    retailer = repository.get_retailer_by_user_id(user["id"])
    if not retailer:
        return None
    metadata = user.get("metadata") or {}
    return {
        "id": retailer.get("id"),
        "name": retailer.get("business_name") or metadata.get("full_name") or "",
        "email": user.get("email") or "",
        "address": retailer.get("address") or "",
    }
