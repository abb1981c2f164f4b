"""
Gestionnaire d'exceptions HTTP.
- 401/403 sur une navigation HTML (ex: retour de paiement Stripe): redirection vers la page de connexion.
- Sinon réponse JSON standard {"detail": ...} pour les clients API.
"""
import urllib.parse
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.status import HTTP_303_SEE_OTHER
from agrimarket.config import SIGN_IN_PATH

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def html_redirect_on_auth_errors(request: Request, exc: HTTPException):
        if exc.status_code in (401, 403):
            accept = (request.headers.get("accept") or "").lower()
            if "text/html" in accept and request.method == "GET":
                detail = str(getattr(exc, "detail", "")) or (
                    "Veuillez vous connecter" if exc.status_code == 401 else "Accès interdit"
                )
                next_url = request.url.path + (f"?{request.url.query}" if request.url.query else "")
                query = urllib.parse.urlencode({"error": detail, "next": next_url})
                return RedirectResponse(url=f"{SIGN_IN_PATH}?{query}", status_code=HTTP_303_SEE_OTHER)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))
