from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from jose import JWTError
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.auth import get_current_user
from app.core.config import ADMIN_USERNAME, PRE_AUTH_TOKEN_EXPIRE_MINUTES, PUBLIC_BASE_URL
from app.core.security import PRE_AUTH_SCOPE, create_access_token, decode_token, verify_password
from app.database.deps import get_db
from app.models.user import User
from app.schemas.user import (
    LoginResultOut,
    TwoFactorCodeIn,
    TwoFactorSetupOut,
    TwoFactorVerifyIn,
    UserLogin,
    UserOut,
)
from app.services.app_settings import load_settings
from app.services.audit import log_action
from app.services.saml import SsoConfigError, build_sso_redirect_url
from app.services.two_factor import generate_secret, provisioning_uri, verify_code

router = APIRouter(prefix="/auth", tags=["Auth"])


def _access_token_for(user: User) -> str:
    return create_access_token({"sub": str(user.id), "role": user.role, "username": user.username})


def _complete_login(db: Session, user: User, requires_2fa_setup: bool = False) -> LoginResultOut:
    user.last_login = datetime.now(timezone.utc)
    log_action(db, user.username, "LOGIN", "USER", user.id, "Login realizado.")
    db.commit()
    db.refresh(user)
    return LoginResultOut(
        access_token=_access_token_for(user),
        requires_2fa_setup=requires_2fa_setup,
        user=UserOut.model_validate(user),
    )


@router.post("/login", response_model=LoginResultOut)
def login(credentials: UserLogin, db: Session = Depends(get_db)):
    identifier = credentials.username.strip()
    user = db.query(User).filter(or_(User.username == identifier, User.email == identifier)).first()
    if not user or not verify_password(credentials.password, user.password):
        raise HTTPException(status_code=401, detail="Usuário ou senha inválidos")

    if user.is_2fa_enabled:
        pre_auth_token = create_access_token(
            {"sub": str(user.id)},
            expires_minutes=PRE_AUTH_TOKEN_EXPIRE_MINUTES,
            scope=PRE_AUTH_SCOPE,
        )
        return LoginResultOut(
            requires_2fa=True,
            pre_auth_token=pre_auth_token,
            user=UserOut.model_validate(user),
        )

    settings = load_settings(db)
    requires_setup = (
        settings.is_2fa_enabled
        and settings.require_2fa
        and user.username != ADMIN_USERNAME
        and not user.sso_provider
    )
    return _complete_login(db, user, requires_2fa_setup=requires_setup)


@router.post("/verify-2fa", response_model=LoginResultOut)
def verify_two_factor(payload: TwoFactorVerifyIn, db: Session = Depends(get_db)):
    invalid = HTTPException(status_code=401, detail="Código de verificação inválido")
    try:
        claims = decode_token(payload.pre_auth_token)
    except JWTError:
        raise invalid
    if claims.get("scope") != PRE_AUTH_SCOPE or claims.get("sub") is None:
        raise invalid

    user = db.query(User).filter(User.id == int(claims["sub"])).first()
    if not user or not user.is_2fa_enabled or not verify_code(user.two_fa_secret, payload.code):
        raise invalid
    return _complete_login(db, user)


@router.post("/logout", status_code=204)
def logout(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    log_action(db, current_user.username, "LOGOUT", "USER", current_user.id, "Logout realizado.")
    db.commit()
    return None


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)):
    return UserOut.model_validate(current_user)


@router.post("/2fa/generate", response_model=TwoFactorSetupOut)
def generate_two_factor(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    secret = generate_secret()
    current_user.two_fa_secret = secret
    current_user.is_2fa_enabled = False
    db.commit()
    return TwoFactorSetupOut(
        secret=secret,
        otpauth_url=provisioning_uri(secret, current_user.email or current_user.username),
    )


@router.post("/2fa/enable", response_model=UserOut)
def enable_two_factor(
    payload: TwoFactorCodeIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not current_user.two_fa_secret:
        raise HTTPException(status_code=400, detail="Gere um segredo 2FA antes de ativar")
    if not verify_code(current_user.two_fa_secret, payload.code):
        raise HTTPException(status_code=400, detail="Código de verificação inválido")
    current_user.is_2fa_enabled = True
    log_action(db, current_user.username, "2FA_ENABLE", "USER", current_user.id, "2FA ativado.")
    db.commit()
    db.refresh(current_user)
    return UserOut.model_validate(current_user)


@router.post("/2fa/disable", response_model=UserOut)
def disable_two_factor(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    current_user.is_2fa_enabled = False
    current_user.two_fa_secret = None
    log_action(db, current_user.username, "2FA_DISABLE", "USER", current_user.id, "2FA desativado.")
    db.commit()
    db.refresh(current_user)
    return UserOut.model_validate(current_user)


@router.get("/sso/login")
def sso_login(db: Session = Depends(get_db)):
    settings = load_settings(db)
    if not settings.is_sso_enabled:
        raise HTTPException(status_code=400, detail="SSO não está habilitado")
    try:
        url = build_sso_redirect_url(settings.sso_url, PUBLIC_BASE_URL, settings.sso_entity_id)
    except SsoConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return RedirectResponse(url=url, status_code=302)


@router.post("/sso/callback")
def sso_callback():
    raise HTTPException(status_code=501, detail="Validação de asserção SAML não implementada")
