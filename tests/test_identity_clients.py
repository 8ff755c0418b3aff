from __future__ import annotations

import json
import time
from urllib.parse import parse_qs

import httpx
import jwt
from jwt.algorithms import RSAAlgorithm
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from app.domain.exceptions import InvalidCredentialError, ProviderUnavailableError
from app.infrastructure.clients.identity.apple_identity_client import (
    APPLE_ISSUER,
    APPLE_JWKS_URL,
    APPLE_TOKEN_URL,
    CLIENT_SECRET_TTL_SECONDS,
    AppleIdentityClient,
)
from app.infrastructure.clients.identity.google_identity_client import (
    GOOGLE_JWKS_URL,
    GoogleIdentityClient,
)
from app.infrastructure.clients.identity.jwks import JwksKeyCache


GOOGLE_CLIENT_ID = "client-123.apps.googleusercontent.com"
APPLE_BUNDLE_ID = "com.mileagemax.pro"

SIGNING_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)
ROTATED_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)
APPLE_CLIENT_KEY = ec.generate_private_key(ec.SECP256R1())
APPLE_CLIENT_KEY_PEM = APPLE_CLIENT_KEY.private_bytes(
    encoding=serialization.Encoding.PEM,
    format=serialization.PrivateFormat.PKCS8,
    encryption_algorithm=serialization.NoEncryption(),
).decode("utf-8")


def _jwk(private_key, kid: str) -> dict:
    key = json.loads(RSAAlgorithm.to_jwk(private_key.public_key()))
    key.update({"kid": kid, "alg": "RS256", "use": "sig"})
    return key


def _identity_token(
    *,
    private_key=SIGNING_KEY,
    kid: str | None = "key-1",
    issuer: str = "https://accounts.google.com",
    audience: str = GOOGLE_CLIENT_ID,
    expires_in: int = 600,
    **extra,
) -> str:
    now = int(time.time())
    claims = {
        "iss": issuer,
        "aud": audience,
        "sub": "google-sub-1",
        "iat": now,
        "exp": now + expires_in,
        "email": "driver@example.com",
        "email_verified": True,
        "name": "Road Warrior",
    }
    claims.update(extra)
    headers = {"kid": kid} if kid is not None else {}
    return jwt.encode(claims, private_key, algorithm="RS256", headers=headers)


class KeyServer:
    def __init__(self, *key_sets: list[dict]):
        self.key_sets = list(key_sets)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self.key_sets)) - 1
        return httpx.Response(200, json={"keys": self.key_sets[index]})


def _google_client(handler, *, cache_ttl_seconds: float = 86400, clock=time.monotonic) -> GoogleIdentityClient:
    transport = httpx.MockTransport(handler)
    return GoogleIdentityClient(
        client_id=GOOGLE_CLIENT_ID,
        key_cache=JwksKeyCache(
            jwks_url=GOOGLE_JWKS_URL,
            cache_ttl_seconds=cache_ttl_seconds,
            transport=transport,
            clock=clock,
        ),
        transport=transport,
    )


def test_google_identity_is_verified_and_mapped():
    server = KeyServer([_jwk(SIGNING_KEY, "key-1")])
    client = _google_client(server)

    identity = client.verify_identity(identity_token=_identity_token())

    assert identity.provider == "google"
    assert identity.subject == "google-sub-1"
    assert identity.email == "driver@example.com"
    assert identity.email_verified is True
    assert identity.name == "Road Warrior"
    assert str(server.requests[0].url) == GOOGLE_JWKS_URL


def test_short_form_google_issuer_is_accepted():
    client = _google_client(KeyServer([_jwk(SIGNING_KEY, "key-1")]))

    identity = client.verify_identity(identity_token=_identity_token(issuer="accounts.google.com"))

    assert identity.subject == "google-sub-1"


def test_key_set_is_cached_between_verifications():
    server = KeyServer([_jwk(SIGNING_KEY, "key-1")])
    client = _google_client(server)

    client.verify_identity(identity_token=_identity_token())
    client.verify_identity(identity_token=_identity_token())

    assert len(server.requests) == 1


def test_key_set_is_refetched_after_ttl():
    now = [1000.0]
    server = KeyServer([_jwk(SIGNING_KEY, "key-1")])
    client = _google_client(server, cache_ttl_seconds=60, clock=lambda: now[0])

    client.verify_identity(identity_token=_identity_token())
    now[0] += 61
    client.verify_identity(identity_token=_identity_token())

    assert len(server.requests) == 2


def test_rotated_key_is_found_after_a_single_refetch():
    server = KeyServer([_jwk(SIGNING_KEY, "key-1")], [_jwk(ROTATED_KEY, "key-2")])
    client = _google_client(server)
    client.verify_identity(identity_token=_identity_token())

    identity = client.verify_identity(identity_token=_identity_token(private_key=ROTATED_KEY, kid="key-2"))

    assert identity.subject == "google-sub-1"
    assert len(server.requests) == 2


def test_unknown_kid_refetches_a_warm_key_set_exactly_once_then_fails():
    server = KeyServer([_jwk(SIGNING_KEY, "key-1")])
    client = _google_client(server)
    client.verify_identity(identity_token=_identity_token())

    with pytest.raises(InvalidCredentialError, match="Authentication failed."):
        client.verify_identity(identity_token=_identity_token(kid="unknown"))

    assert len(server.requests) == 2


def test_unknown_kid_on_cold_cache_costs_a_single_fetch():
    server = KeyServer([_jwk(SIGNING_KEY, "key-1")])
    client = _google_client(server)

    with pytest.raises(InvalidCredentialError):
        client.verify_identity(identity_token=_identity_token(kid="unknown"))

    assert len(server.requests) == 1


def test_missing_kid_is_rejected_without_fetching_keys():
    server = KeyServer([_jwk(SIGNING_KEY, "key-1")])
    client = _google_client(server)

    with pytest.raises(InvalidCredentialError):
        client.verify_identity(identity_token=_identity_token(kid=None))

    assert server.requests == []


@pytest.mark.parametrize(
    "token_kwargs",
    [
        {"audience": "someone-else"},
        {"issuer": "https://evil.example.com"},
        {"expires_in": -60},
        {"private_key": ROTATED_KEY},
    ],
)
def test_invalid_identity_tokens_are_rejected(token_kwargs):
    client = _google_client(KeyServer([_jwk(SIGNING_KEY, "key-1")]))

    with pytest.raises(InvalidCredentialError):
        client.verify_identity(identity_token=_identity_token(**token_kwargs))


def test_garbage_identity_token_is_rejected():
    client = _google_client(KeyServer([_jwk(SIGNING_KEY, "key-1")]))

    with pytest.raises(InvalidCredentialError):
        client.verify_identity(identity_token="definitely.not.a-token")


def test_key_endpoint_failure_is_provider_unavailable():
    client = _google_client(lambda request: httpx.Response(503, text="down"))

    with pytest.raises(ProviderUnavailableError):
        client.verify_identity(identity_token=_identity_token())


def test_key_endpoint_timeout_is_provider_unavailable():
    def _timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    client = _google_client(_timeout)

    with pytest.raises(ProviderUnavailableError):
        client.verify_identity(identity_token=_identity_token())


@pytest.mark.parametrize("body", [b"not json", b'{"no_keys": []}', b'["keys"]'])
def test_malformed_key_set_is_provider_unavailable(body):
    client = _google_client(lambda request: httpx.Response(200, content=body))

    with pytest.raises(ProviderUnavailableError):
        client.verify_identity(identity_token=_identity_token())


def test_google_profile_lookup_is_best_effort():
    def _handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/userinfo"):
            assert request.headers["Authorization"] == "Bearer google-access"
            return httpx.Response(200, json={"name": "Road Warrior", "picture": "https://img/p.png"})
        return httpx.Response(200, json={"keys": []})

    profile = _google_client(_handler).fetch_profile(access_token="google-access")
    assert profile is not None
    assert profile.picture == "https://img/p.png"

    failing = _google_client(lambda request: httpx.Response(401))
    assert failing.fetch_profile(access_token="expired") is None


def _apple_client(handler, *, key_server=None) -> AppleIdentityClient:
    transport = httpx.MockTransport(handler)
    return AppleIdentityClient(
        team_id="TEAM123456",
        key_id="KEY1234567",
        bundle_id=APPLE_BUNDLE_ID,
        private_key=APPLE_CLIENT_KEY_PEM,
        key_cache=JwksKeyCache(
            jwks_url=APPLE_JWKS_URL,
            transport=httpx.MockTransport(key_server or KeyServer([_jwk(SIGNING_KEY, "apple-1")])),
        ),
        transport=transport,
    )


def test_apple_identity_without_email_is_still_verified():
    client = _apple_client(lambda request: httpx.Response(500))
    token = _identity_token(
        kid="apple-1",
        issuer=APPLE_ISSUER,
        audience=APPLE_BUNDLE_ID,
        sub="001234.apple.sub",
        email=None,
        is_private_email="true",
    )

    identity = client.verify_identity(identity_token=token)

    assert identity.provider == "apple"
    assert identity.subject == "001234.apple.sub"
    assert identity.email is None
    assert identity.is_private_email is True


def test_apple_rejects_google_issuer():
    client = _apple_client(lambda request: httpx.Response(500))
    token = _identity_token(kid="apple-1", audience=APPLE_BUNDLE_ID)

    with pytest.raises(InvalidCredentialError):
        client.verify_identity(identity_token=token)


def test_apple_client_secret_is_es256_signed_with_team_and_key_ids():
    client = _apple_client(lambda request: httpx.Response(500))

    secret = client.build_client_secret(now=1_700_000_000)

    header = jwt.get_unverified_header(secret)
    assert header["alg"] == "ES256"
    assert header["kid"] == "KEY1234567"
    claims = jwt.decode(
        secret,
        APPLE_CLIENT_KEY.public_key(),
        algorithms=["ES256"],
        audience=APPLE_ISSUER,
        options={"verify_exp": False},
    )
    assert claims["iss"] == "TEAM123456"
    assert claims["sub"] == APPLE_BUNDLE_ID
    assert claims["exp"] - claims["iat"] == CLIENT_SECRET_TTL_SECONDS


def test_apple_code_exchange_posts_form_and_parses_tokens():
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "access_token": "apple-access",
                "refresh_token": "apple-refresh",
                "id_token": "apple-id",
                "expires_in": 3600,
                "token_type": "Bearer",
            },
        )

    tokens = _apple_client(_handler).exchange_authorization_code(code="auth-code-1")

    assert tokens.access_token == "apple-access"
    assert tokens.refresh_token == "apple-refresh"
    assert tokens.expires_in == 3600
    assert str(seen[0].url) == APPLE_TOKEN_URL
    form = parse_qs(seen[0].content.decode("utf-8"))
    assert form["client_id"] == [APPLE_BUNDLE_ID]
    assert form["code"] == ["auth-code-1"]
    assert form["grant_type"] == ["authorization_code"]
    assert form["client_secret"][0].count(".") == 2


def test_apple_code_rejected_by_provider_is_invalid_credential():
    client = _apple_client(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))

    with pytest.raises(InvalidCredentialError):
        client.exchange_authorization_code(code="used-code")


def test_apple_token_endpoint_outage_is_provider_unavailable():
    client = _apple_client(lambda request: httpx.Response(503))

    with pytest.raises(ProviderUnavailableError):
        client.exchange_authorization_code(code="auth-code-1")
