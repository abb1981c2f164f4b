"""
Factory d'application recommandée pour les entrypoints (ex: agrimarket.asgi).
Ordonne les étapes d'initialisation de manière lisible et testable.
"""
from fastapi import FastAPI
from .lifespan import lifespan
from .middlewares import register_basic_middlewares, register_security_middleware, register_force_https_middleware
from .exceptions import register_exception_handlers
from .routers import register_routers
from agrimarket.utils.csrf import register_csrf_middleware

def create_app() -> FastAPI:
    """
    Construit l'app FastAPI avec le lifespan et enregistre:
      - middlewares de base (session, CORS, hosts, proxy), CSRF, en-têtes de sécurité
      - gestionnaire d'exceptions HTTP
      - routers panier, commandes, paiements, auth, health
      - redirection HTTPS ajoutée en dernier pour s'exécuter en premier
    """
    app = FastAPI(title="AgriMarket Checkout API", lifespan=lifespan)
    register_basic_middlewares(app)
    register_csrf_middleware(app)
    register_security_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    register_force_https_middleware(app)
    return app
