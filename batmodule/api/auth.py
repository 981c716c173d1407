import logging

from fastapi import APIRouter, Depends, Request

from batmodule.dependencies import (
    authenticate_secure,
    generate_csrf_token,
    get_auth_service,
    get_session,
    get_session_manager,
    limiter,
)
from batmodule.errors import APIError
from batmodule.schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    CsrfTokenResponse,
    DeleteAccountRequest,
    LoginRequest,
    MeResponse,
    MessageResponse,
    RegisterRequest,
    UserResponse,
)
from batmodule.services.auth_service import AuthService, EmailAlreadyUsedError, UserNotFoundError
from batmodule.services.session_manager import DEFAULT_MAX_AGE, REMEMBER_ME_MAX_AGE
from batmodule.utils.logging import audit_log
from batmodule.utils.metrics import AUTH_EVENTS

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)

AUTH_RATE_LIMIT = "5 per 15 minutes"


def _start_session(request: Request, user: dict, max_age: int = DEFAULT_MAX_AGE) -> None:
    """Bind the user to the session under a fresh id (fixation defence)."""
    session = get_session(request)
    session["userId"] = user["id"]
    session["email"] = user["email"]
    get_session_manager(request).regenerate(session)
    session.set_max_age(max_age)


@router.post("/register", response_model=AuthResponse, status_code=201)
@limiter.limit(AUTH_RATE_LIMIT)
async def register(
    request: Request,
    payload: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Create an account and log it in"""
    try:
        user = await auth_service.register(
            email=payload.email,
            password=payload.password,
            first_name=payload.first_name,
            last_name=payload.last_name,
            company_name=payload.company_name,
        )
    except EmailAlreadyUsedError:
        raise APIError(409, "Email déjà utilisé", "Un compte avec cet email existe déjà")

    _start_session(request, user)
    AUTH_EVENTS.labels(event="register").inc()
    audit_log("register", user["id"])
    return AuthResponse(message="Compte créé avec succès", user=UserResponse(**user))


@router.post("/login", response_model=AuthResponse)
@limiter.limit(AUTH_RATE_LIMIT)
async def login(
    request: Request,
    payload: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Email + password login"""
    user = await auth_service.authenticate(payload.email, payload.password)
    if not user:
        AUTH_EVENTS.labels(event="login_failed").inc()
        audit_log("login_failed", None, email=payload.email)
        raise APIError(401, "Identifiants invalides", "Email ou mot de passe incorrect")

    max_age = REMEMBER_ME_MAX_AGE if payload.remember_me else DEFAULT_MAX_AGE
    _start_session(request, user, max_age)
    AUTH_EVENTS.labels(event="login").inc()
    audit_log("login", user["id"], remember_me=payload.remember_me)
    return AuthResponse(message="Connexion réussie", user=UserResponse(**user))


@router.post("/logout", response_model=MessageResponse)
async def logout(request: Request):
    """Destroy the session; the cookie is cleared on the way out"""
    session = get_session(request)
    user_id = session.get("userId") if session is not None else None
    if session is not None:
        session.destroy()
    AUTH_EVENTS.labels(event="logout").inc()
    audit_log("logout", user_id)
    return MessageResponse(message="Déconnexion réussie")


@router.get("/me", response_model=MeResponse)
async def me(user: dict = Depends(authenticate_secure)):
    """Get current authenticated user"""
    return MeResponse(
        user=UserResponse(
            id=user["user_id"],
            email=user["email"],
            first_name=user["first_name"],
            last_name=user["last_name"],
            company_name=user["company_name"],
        )
    )


@router.get("/csrf", response_model=CsrfTokenResponse)
async def csrf_token(request: Request, token: str | None = Depends(generate_csrf_token)):
    """CSRF token for the current session"""
    session = get_session(request)
    if token and session is not None:
        # The token is bound to this id: make sure the cookie goes out
        session.mark_modified()
    return CsrfTokenResponse(csrf_token=token)


@router.put("/change-password", response_model=MessageResponse)
async def change_password(
    payload: ChangePasswordRequest,
    user: dict = Depends(authenticate_secure),
    auth_service: AuthService = Depends(get_auth_service),
):
    try:
        changed = await auth_service.change_password(
            user["user_id"], payload.current_password, payload.new_password
        )
    except UserNotFoundError:
        raise APIError(404, "Utilisateur non trouvé")
    if not changed:
        raise APIError(401, "Mot de passe actuel incorrect")

    audit_log("password_changed", user["user_id"])
    return MessageResponse(message="Mot de passe modifié avec succès")


@router.delete("/account", response_model=MessageResponse)
async def delete_account(
    request: Request,
    payload: DeleteAccountRequest | None = None,
    user: dict = Depends(authenticate_secure),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Delete the account and its session"""
    if payload is None or not payload.confirm:
        raise APIError(400, "Confirmation requise", "Vous devez confirmer la suppression de votre compte")

    await auth_service.delete_user(user["user_id"])
    get_session(request).destroy()
    audit_log("account_deleted", user["user_id"])
    return MessageResponse(message="Compte supprimé avec succès")
