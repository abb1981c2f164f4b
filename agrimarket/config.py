# agrimarket.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale de la marketplace.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe), sécurité cookies, CORS/hosts
- Paramètre le flux panier -> commande -> paiement (devise, URLs de retour, synchro panier)
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _env_flag(name: str, default: str = "false") -> bool:
    return _clean_env(os.getenv(name, default)).lower() in ("1", "true", "yes")

# Supabase: URLs et clés (anon/service)
# - SUPABASE_URL peut parfois être sans schéma: on préfixe en https:// si nécessaire
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Cookies / sessions
COOKIE_SECURE = _env_flag("COOKIE_SECURE")
SESSION_SECRET_KEY = _clean_env(os.getenv("SESSION_SECRET_KEY") or "replace_me_with_a_long_random_secret")

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

# Stripe: clés publiques/privées et secret webhook
STRIPE_PUBLIC_KEY = _clean_env(os.getenv("STRIPE_PUBLIC_KEY") or "")
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")

# Paiement: devise (krw = devise sans décimales), moyens de paiement, pages de retour
PAYMENT_CURRENCY = _clean_env(os.getenv("PAYMENT_CURRENCY") or "krw").lower()
PAYMENT_METHOD_TYPES = [m.strip() for m in os.getenv("PAYMENT_METHOD_TYPES", "card").split(",") if m.strip()]
PAYMENT_SUCCESS_PATH = os.getenv("PAYMENT_SUCCESS_PATH", "/api/v1/payments/confirm")
PAYMENT_FAIL_PATH = os.getenv("PAYMENT_FAIL_PATH", "/api/v1/payments/fail")

# Panier: miroir best-effort dans la table cart_items
CART_DB_SYNC = _env_flag("CART_DB_SYNC")

# Page de connexion (redirection des navigations HTML non authentifiées)
SIGN_IN_PATH = os.getenv("SIGN_IN_PATH", "/sign-in")

# État de caisse côté serveur (panier, commande en attente): Redis, la session ne porte qu'une clé opaque
CHECKOUT_STATE_REDIS_URL = _clean_env(
    os.getenv("CHECKOUT_STATE_REDIS_URL") or os.getenv("RATE_LIMIT_REDIS_URL") or "redis://127.0.0.1:6379/0"
)
CHECKOUT_STATE_TTL_SECONDS = int(os.getenv("CHECKOUT_STATE_TTL_SECONDS", str(7 * 24 * 3600)))
