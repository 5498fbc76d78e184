from typing import Optional

import pyotp

from app.core.config import TOTP_ISSUER


def generate_secret() -> str:
    return pyotp.random_base32()


def provisioning_uri(secret: str, account_name: str, issuer: Optional[str] = None) -> str:
    return pyotp.TOTP(secret).provisioning_uri(name=account_name, issuer_name=issuer or TOTP_ISSUER)


def verify_code(secret: Optional[str], code: Optional[str]) -> bool:
    token = str(code or "").strip().replace(" ", "")
    if not secret or not token.isdigit():
        return False
    return pyotp.TOTP(secret).verify(token, valid_window=1)
