from typing import Optional, Dict, Any
import logging
from .repository import (
    get_user_from_access_token as _repo_get_user_from_token,
    get_profile_by_email as _repo_get_profile_by_email,
)

logger = logging.getLogger(__name__)

ROLES = ("retailer", "wholesaler", "admin")

def determine_role(metadata: Dict[str, Any] | None) -> Optional[str]:
    role_lower = str((metadata or {}).get("role", "")).lower()
    return role_lower if role_lower in ROLES else None

def get_user_from_token(access_token: str) -> Dict[str, Any]:
    """Normalise user issu de supabase.auth.get_user(access_token):
    - Retourne {id, email, metadata, role, token}
    """
    raw = _repo_get_user_from_token(access_token)
    metadata = raw.get("user_metadata") or {}
    return {
        "id": raw.get("id"),
        "email": raw.get("email"),
        "metadata": metadata,
        "role": determine_role(metadata),
        "token": access_token,
    }

class DuplicateAccountCheck:
    def __init__(self, success: bool, exists: bool = False, role: Optional[str] = None, error: Optional[str] = None):
        self.success = success
        self.exists = exists
        self.role = role
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "exists": self.exists, "role": self.role, "error": self.error}

def check_duplicate_account(email: str) -> DuplicateAccountCheck:
    """Détection de compte existant par requête sur les profils (avant inscription ou après un refus du fournisseur d'identité).
    - exists=True et role renseigné si un profil porte déjà cet email
    """
    email = (email or "").strip()
    if not email:
        return DuplicateAccountCheck(False, error="Email requis")
    try:
        profile = _repo_get_profile_by_email(email)
    except Exception:
        logger.exception("auth.check_duplicate_account failed")
        return DuplicateAccountCheck(False, error="Vérification du compte impossible")
    if not profile:
        return DuplicateAccountCheck(True, exists=False)
    return DuplicateAccountCheck(True, exists=True, role=profile.get("role"))
