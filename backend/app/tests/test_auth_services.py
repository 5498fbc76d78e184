import base64
import zlib
from urllib.parse import parse_qs, urlparse

import pyotp
import pytest

from app.services.saml import SsoConfigError, build_sso_redirect_url
from app.services.two_factor import generate_secret, provisioning_uri, verify_code


def test_sso_redirect_carries_deflated_authn_request():
    url = build_sso_redirect_url(
        "https://idp.example.com/sso",
        "https://inventario.example.com/",
        entity_id="",
        request_id="_abc123",
    )
    parsed = urlparse(url)
    assert parsed.netloc == "idp.example.com"
    encoded = parse_qs(parsed.query)["SAMLRequest"][0]
    xml = zlib.decompress(base64.b64decode(encoded), -15).decode("utf-8")

    assert 'ID="_abc123"' in xml
    assert 'AssertionConsumerServiceURL="https://inventario.example.com/auth/sso/callback"' in xml
    assert "<saml:Issuer>https://inventario.example.com</saml:Issuer>" in xml


def test_sso_redirect_requires_url():
    with pytest.raises(SsoConfigError):
        build_sso_redirect_url("", "https://inventario.example.com")


def test_totp_roundtrip():
    secret = generate_secret()
    assert verify_code(secret, pyotp.TOTP(secret).now())
    assert not verify_code(secret, "abc")
    assert not verify_code(None, "123456")
    assert provisioning_uri(secret, "ana@empresa.com").startswith("otpauth://totp/")
