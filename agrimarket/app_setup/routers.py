"""
Registre central des routers (API v1 et health).
"""
from fastapi import FastAPI
from agrimarket.auth.views import api_router as auth_api_router
from agrimarket.cart import views as cart_views
from agrimarket.orders import views as orders_views
from agrimarket.payments import views as payments_views
from agrimarket.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    # API v1
    app.include_router(auth_api_router)
    app.include_router(cart_views.router)
    app.include_router(orders_views.router)
    app.include_router(payments_views.router)
    # Health & monitoring
    app.include_router(health_router)
