"""QuickAuth token verification against a JWKS served by httpx.MockTransport."""

import time
from typing import Optional

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from jwt.algorithms import ECAlgorithm

from farpedia.errors import InvalidToken, Unavailable
from farpedia.services.identity import QuickAuthVerifier, extract_bearer_token, resolve_request_domain

ISSUER = "https://auth.farcaster.xyz"
JWKS_URL = "https://auth.farcaster.xyz/.well-known/jwks.json"
DOMAIN = "farpedia.app"


def _keypair(kid: str):
    private_key = ec.generate_private_key(ec.SECP256R1())
    jwk = ECAlgorithm.to_jwk(private_key.public_key(), as_dict=True)
    jwk.update({"kid": kid, "alg": "ES256", "use": "sig"})
    return private_key, jwk


def _token(private_key, kid: str = "k1", **overrides) -> str:
    claims = {
        "sub": "12345",
        "aud": DOMAIN,
        "iss": ISSUER,
        "iat": int(time.time()),
        "exp": int(time.time()) + 300,
    }
    claims.update(overrides)
    claims = {k: v for k, v in claims.items() if v is not None}
    return jwt.encode(claims, private_key, algorithm="ES256", headers={"kid": kid})


class JwksServer:
    def __init__(self, *jwks: dict, status: int = 200) -> None:
        self.keys = list(jwks)
        self.status = status
        self.fetches = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.fetches += 1
        if self.status != 200:
            return httpx.Response(self.status)
        return httpx.Response(200, json={"keys": self.keys})


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _verifier(server: JwksServer, clock: Optional[FakeClock] = None) -> QuickAuthVerifier:
    return QuickAuthVerifier(
        jwks_url=JWKS_URL,
        issuer=ISSUER,
        algorithms=["ES256"],
        transport=httpx.MockTransport(server),
        min_refresh_seconds=60.0,
        clock=clock or FakeClock(),
    )


@pytest.fixture
def signing():
    return _keypair("k1")


class TestVerify:
    async def test_valid_token_returns_fid(self, signing):
        private_key, jwk = signing
        server = JwksServer(jwk)
        verifier = _verifier(server)

        assert await verifier.verify(_token(private_key), DOMAIN) == "12345"
        # Keys are cached after the first fetch
        assert await verifier.verify(_token(private_key), DOMAIN) == "12345"
        assert server.fetches == 1
        await verifier.aclose()

    async def test_token_for_another_domain_is_rejected(self, signing):
        private_key, jwk = signing
        verifier = _verifier(JwksServer(jwk))

        with pytest.raises(InvalidToken):
            await verifier.verify(_token(private_key, aud="other-deployment.app"), DOMAIN)

    async def test_expired_token_is_rejected(self, signing):
        private_key, jwk = signing
        verifier = _verifier(JwksServer(jwk))

        with pytest.raises(InvalidToken):
            await verifier.verify(_token(private_key, exp=int(time.time()) - 60), DOMAIN)

    async def test_wrong_issuer_is_rejected(self, signing):
        private_key, jwk = signing
        verifier = _verifier(JwksServer(jwk))

        with pytest.raises(InvalidToken):
            await verifier.verify(_token(private_key, iss="https://evil.example"), DOMAIN)

    async def test_missing_subject_is_rejected(self, signing):
        private_key, jwk = signing
        verifier = _verifier(JwksServer(jwk))

        with pytest.raises(InvalidToken):
            await verifier.verify(_token(private_key, sub=None), DOMAIN)

    async def test_signature_from_other_key_is_rejected(self, signing):
        _, jwk = signing
        impostor, _ = _keypair("k1")
        verifier = _verifier(JwksServer(jwk))

        with pytest.raises(InvalidToken):
            await verifier.verify(_token(impostor), DOMAIN)

    async def test_malformed_token(self, signing):
        _, jwk = signing
        verifier = _verifier(JwksServer(jwk))

        with pytest.raises(InvalidToken):
            await verifier.verify("not-a-jwt", DOMAIN)

    async def test_unknown_kid_refetches_after_interval(self, signing):
        private_key, jwk = signing
        rotated_key, rotated_jwk = _keypair("k2")
        server = JwksServer(jwk)
        clock = FakeClock()
        verifier = _verifier(server, clock)
        await verifier.verify(_token(private_key), DOMAIN)

        server.keys.append(rotated_jwk)
        clock.now += 61
        assert await verifier.verify(_token(rotated_key, kid="k2"), DOMAIN) == "12345"
        assert server.fetches == 2

    async def test_unknown_kids_within_interval_do_not_refetch(self, signing):
        private_key, jwk = signing
        server = JwksServer(jwk)
        clock = FakeClock()
        verifier = _verifier(server, clock)
        await verifier.verify(_token(private_key), DOMAIN)

        for kid in ("k3", "k4", "k5"):
            clock.now += 5
            with pytest.raises(InvalidToken):
                await verifier.verify(_token(private_key, kid=kid), DOMAIN)
        assert server.fetches == 1

        clock.now += 60
        with pytest.raises(InvalidToken):
            await verifier.verify(_token(private_key, kid="k6"), DOMAIN)
        assert server.fetches == 2

    async def test_key_service_outage_is_unavailable(self, signing):
        private_key, _ = signing
        verifier = _verifier(JwksServer(status=503))

        with pytest.raises(Unavailable) as exc_info:
            await verifier.verify(_token(private_key), DOMAIN)
        assert exc_info.value.retryable is True

    async def test_key_service_not_found_is_not_retryable(self, signing):
        private_key, _ = signing
        verifier = _verifier(JwksServer(status=404))

        with pytest.raises(Unavailable) as exc_info:
            await verifier.verify(_token(private_key), DOMAIN)
        assert exc_info.value.retryable is False


class TestExtractBearerToken:
    def test_bearer(self):
        assert extract_bearer_token("Bearer abc.def.ghi") == "abc.def.ghi"
        assert extract_bearer_token("bearer   abc ") == "abc"

    @pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer", "Bearer   "])
    def test_missing_or_wrong_scheme(self, header):
        with pytest.raises(InvalidToken):
            extract_bearer_token(header)


class TestResolveRequestDomain:
    def test_origin_wins(self):
        assert resolve_request_domain("https://farpedia.app", "internal:8000", "fallback.app") == "farpedia.app"

    def test_origin_port_is_kept(self):
        assert resolve_request_domain("http://localhost:3000", None, "fallback.app") == "localhost:3000"

    def test_unparseable_origin_falls_back_to_host(self):
        assert resolve_request_domain("null", "farpedia.app", "fallback.app") == "farpedia.app"

    def test_canonical_host_last(self):
        assert resolve_request_domain(None, None, "https://farpedia.app") == "farpedia.app"
        assert resolve_request_domain(None, None, "farpedia.app") == "farpedia.app"
