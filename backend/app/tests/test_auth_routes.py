import pyotp
import pytest
from fastapi import HTTPException

from app.core.security import ACCESS_SCOPE, PRE_AUTH_SCOPE, decode_token
from app.models.audit_log import AuditLog
from app.routes.auth import enable_two_factor, generate_two_factor, login, sso_login, verify_two_factor
from app.schemas.user import TwoFactorCodeIn, TwoFactorVerifyIn, UserLogin
from app.services.app_settings import update_settings


def test_login_by_username_or_email(db_session, make_user):
    user = make_user("User", username="ana.souza")

    by_name = login(credentials=UserLogin(username="ana.souza", password="Senha@123"), db=db_session)
    by_email = login(credentials=UserLogin(username="ana.souza@test.local", password="Senha@123"), db=db_session)

    assert decode_token(by_name.access_token)["sub"] == str(user.id)
    assert decode_token(by_email.access_token)["scope"] == ACCESS_SCOPE
    assert by_name.user.last_login is not None
    assert db_session.query(AuditLog).filter(AuditLog.action_type == "LOGIN").count() == 2


def test_wrong_password_is_unauthorized(db_session, make_user):
    make_user("User", username="bruno")
    with pytest.raises(HTTPException) as exc:
        login(credentials=UserLogin(username="bruno", password="errada"), db=db_session)
    assert exc.value.status_code == 401


def test_required_2fa_flags_setup(db_session, make_user):
    make_user("User", username="carla")
    update_settings(db_session, is_2fa_enabled=True, require_2fa=True)
    db_session.commit()

    result = login(credentials=UserLogin(username="carla", password="Senha@123"), db=db_session)
    assert result.requires_2fa_setup is True


def test_two_factor_login_flow(db_session, make_user):
    user = make_user("User", username="daniel")
    setup = generate_two_factor(db=db_session, current_user=user)
    totp = pyotp.TOTP(setup.secret)
    with pytest.raises(HTTPException):
        enable_two_factor(payload=TwoFactorCodeIn(code="abc123"), db=db_session, current_user=user)
    enable_two_factor(payload=TwoFactorCodeIn(code=totp.now()), db=db_session, current_user=user)

    first_step = login(credentials=UserLogin(username="daniel", password="Senha@123"), db=db_session)
    assert first_step.requires_2fa is True
    assert first_step.access_token is None
    assert decode_token(first_step.pre_auth_token)["scope"] == PRE_AUTH_SCOPE

    with pytest.raises(HTTPException) as exc:
        verify_two_factor(payload=TwoFactorVerifyIn(pre_auth_token="invalido", code=totp.now()), db=db_session)
    assert exc.value.status_code == 401

    result = verify_two_factor(
        payload=TwoFactorVerifyIn(pre_auth_token=first_step.pre_auth_token, code=totp.now()),
        db=db_session,
    )
    assert decode_token(result.access_token)["scope"] == ACCESS_SCOPE


def test_sso_login_requires_enabled_provider(db_session):
    with pytest.raises(HTTPException) as exc:
        sso_login(db=db_session)
    assert exc.value.status_code == 400

    update_settings(db_session, is_sso_enabled=True, sso_url="https://idp.example.com/sso")
    db_session.commit()
    response = sso_login(db=db_session)
    assert response.status_code == 302
    assert response.headers["location"].startswith("https://idp.example.com/sso?SAMLRequest=")
