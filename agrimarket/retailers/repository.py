from typing import Optional
import logging
import agrimarket.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

def get_retailer_by_user_id(user_id: str) -> Optional[dict]:
    """
    Fiche détaillant (table retailers) liée au compte utilisateur.
    - Retourne None si absente ou en cas d'erreur.
    """
    if not user_id:
        return None
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("retailers")
            .select("id, user_id, business_name, phone, address")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("retailers.repository.get_retailer_by_user_id failed user_id=%s", user_id)
        return None
