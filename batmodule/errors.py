from __future__ import annotations

from fastapi import Request
from starlette.responses import JSONResponse


class APIError(Exception):
    """Error rendered as the fixed `{error, message}` JSON shape."""

    def __init__(self, status_code: int, error: str, message: str | None = None, **extra):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        body = {"error": self.error}
        if self.message is not None:
            body["message"] = self.message
        body.update(self.extra)
        return body


SESSION_REQUIRED = (401, "Session requise", "Vous devez être connecté pour accéder à cette ressource")
NOT_AUTHENTICATED = (401, "Non authentifié", "Session invalide ou expirée")
USER_GONE = (401, "Utilisateur non trouvé", "L'utilisateur associé à cette session n'existe plus")
AUTH_LOOKUP_FAILED = (
    500,
    "Erreur d'authentification",
    "Une erreur est survenue lors de la vérification de l'authentification",
)


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)
