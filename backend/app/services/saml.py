from __future__ import annotations

import base64
import uuid
import zlib
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote
from xml.sax.saxutils import quoteattr

ACS_PATH = "/auth/sso/callback"


class SsoConfigError(ValueError):
    pass


def build_authn_request(acs_url: str, issuer: str, destination: str, request_id: Optional[str] = None) -> str:
    request_id = request_id or f"_{uuid.uuid4().hex}"
    issue_instant = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return (
        '<samlp:AuthnRequest xmlns:samlp="urn:oasis:names:tc:SAML:2.0:protocol" '
        'xmlns:saml="urn:oasis:names:tc:SAML:2.0:assertion" '
        f"ID={quoteattr(request_id)} Version=\"2.0\" IssueInstant=\"{issue_instant}\" "
        f"Destination={quoteattr(destination)} "
        'ProtocolBinding="urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST" '
        f"AssertionConsumerServiceURL={quoteattr(acs_url)}>"
        f"<saml:Issuer>{_escape(issuer)}</saml:Issuer>"
        '<samlp:NameIDPolicy Format="urn:oasis:names:tc:SAML:1.1:nameid-format:emailAddress" AllowCreate="true"/>'
        "</samlp:AuthnRequest>"
    )


def _escape(value: str) -> str:
    return quoteattr(value)[1:-1]


def encode_redirect_request(xml: str) -> str:
    # HTTP-Redirect binding: DEFLATE cru (sem cabeçalho zlib) + base64.
    compressor = zlib.compressobj(zlib.Z_DEFAULT_COMPRESSION, zlib.DEFLATED, -15)
    deflated = compressor.compress(xml.encode("utf-8")) + compressor.flush()
    return base64.b64encode(deflated).decode("ascii")


def build_sso_redirect_url(
    sso_url: Optional[str],
    public_base_url: str,
    entity_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> str:
    target = str(sso_url or "").strip()
    if not target:
        raise SsoConfigError("URL do provedor SSO não configurada.")
    base_url = public_base_url.rstrip("/")
    issuer = str(entity_id or "").strip() or base_url
    xml = build_authn_request(f"{base_url}{ACS_PATH}", issuer, target, request_id)
    separator = "&" if "?" in target else "?"
    return f"{target}{separator}SAMLRequest={quote(encode_redirect_request(xml), safe='')}"
