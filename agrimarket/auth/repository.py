from typing import Any, Dict, Optional
import logging
import agrimarket.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

def get_user_from_access_token(access_token: str) -> Dict[str, Any]:
    """Récupère et normalise l'utilisateur depuis supabase.auth.get_user(access_token)."""
    res = supabase_client.get_supabase().auth.get_user(access_token)
    user = getattr(res, "user", None) or {}
    if not isinstance(user, dict):
        user = {
            "id": getattr(user, "id", None),
            "email": getattr(user, "email", None),
            "user_metadata": getattr(user, "user_metadata", None),
        }
    return user or {}

def get_profile_by_email(email: str) -> Optional[dict]:
    """Profil applicatif (table profiles) par email; lève en cas d'erreur d'accès."""
    res = (
        supabase_client.get_service_supabase()
        .table("profiles")
        .select("id, email, role")
        .eq("email", email.lower())
        .limit(1)
        .execute()
    )
    rows = res.data or []
    return rows[0] if rows else None
