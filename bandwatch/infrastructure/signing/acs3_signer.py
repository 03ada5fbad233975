"""
ACS3-HMAC-SHA256 Request Signer

Architectural Intent:
- Produces the Authorization header value for one outbound Workorder API call
- Pure and synchronous: no clock, no nonce, no I/O. The caller puts the
  timestamp and nonce in the headers it passes in.

Signing steps:
    1. canonical query    sorted key=value, RFC 3986 unreserved set kept as-is
    2. canonical headers  host, content-type and x-acs-* only, lowercased, trimmed
    3. signed headers     sorted lowercase names joined by ";"
    4. hashed payload     hex sha256 of the body ("" for GET)
    5. canonical request  METHOD\\n/\\nquery\\nheaders\\nsigned\\npayload
    6. string to sign     ALGORITHM\\nhex sha256(canonical request)
    7. signature          hex hmac-sha256(secret, string to sign)
"""

from __future__ import annotations
from typing import Mapping
from urllib.parse import quote
import hashlib
import hmac

from bandwatch.domain.errors import SigningError

ALGORITHM = "ACS3-HMAC-SHA256"
SIGNED_HEADER_PREFIX = "x-acs-"
_ALWAYS_SIGNED = ("host", "content-type")


def percent_encode(value: str) -> str:
    """Encode everything outside [A-Za-z0-9-_.~] as uppercase %XX of its UTF-8 bytes."""
    return quote(value, safe="-_.~", encoding="utf-8")


def canonical_query_string(params: Mapping[str, str]) -> str:
    return "&".join(
        f"{percent_encode(k)}={percent_encode(v)}" for k, v in sorted(params.items())
    )


def select_signed_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Lowercased, trimmed subset of headers that take part in the signature."""
    selected: dict[str, str] = {}
    for name, value in headers.items():
        lower = name.lower()
        if lower in _ALWAYS_SIGNED or lower.startswith(SIGNED_HEADER_PREFIX):
            selected[lower] = value.strip()
    return dict(sorted(selected.items()))


def canonical_headers(headers: Mapping[str, str]) -> str:
    return "".join(f"{k}:{v}\n" for k, v in select_signed_headers(headers).items())


def signed_header_names(headers: Mapping[str, str]) -> str:
    return ";".join(select_signed_headers(headers))


def sha256_hex(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def hmac_sha256_hex(key: str, data: str) -> str:
    if not isinstance(key, str) or not key:
        raise SigningError("access key secret is empty or not a string")
    try:
        key_bytes = key.encode("utf-8")
    except UnicodeEncodeError as e:
        raise SigningError(f"access key secret is not valid UTF-8: {e}") from e
    return hmac.new(key_bytes, data.encode("utf-8"), hashlib.sha256).hexdigest()


def build_canonical_request(
    method: str,
    query_params: Mapping[str, str],
    headers: Mapping[str, str],
    body: str = "",
) -> str:
    return "\n".join(
        (
            method.upper(),
            "/",
            canonical_query_string(query_params),
            canonical_headers(headers),
            signed_header_names(headers),
            sha256_hex(body),
        )
    )


class Acs3Signer:
    """Signs Workorder API requests with an access key pair."""

    def __init__(self, access_key_id: str, access_key_secret: str) -> None:
        self._access_key_id = access_key_id
        self._access_key_secret = access_key_secret

    @property
    def access_key_id(self) -> str:
        return self._access_key_id

    def string_to_sign(
        self,
        method: str,
        query_params: Mapping[str, str],
        headers: Mapping[str, str],
        body: str = "",
    ) -> str:
        canonical_request = build_canonical_request(method, query_params, headers, body)
        return f"{ALGORITHM}\n{sha256_hex(canonical_request)}"

    def sign(
        self,
        method: str,
        query_params: Mapping[str, str],
        headers: Mapping[str, str],
        body: str = "",
    ) -> str:
        """Return the Authorization header value.

        Raises:
            SigningError: the secret key cannot be used as HMAC key material
        """
        signature = hmac_sha256_hex(
            self._access_key_secret,
            self.string_to_sign(method, query_params, headers, body),
        )
        return (
            f"{ALGORITHM} Credential={self._access_key_id},"
            f"SignedHeaders={signed_header_names(headers)},"
            f"Signature={signature}"
        )
