"""k1s0 oauth2 library."""

from .client_secret import generate_apple_client_secret
from .config import AppleConfig, GoogleConfig, JwksCacheConfig
from .exceptions import OAuth2Error, OAuth2ErrorCodes
from .exchange import exchange_code, exchange_code_async
from .jwks import JwksKeyCache, KeyResolver, parse_jwks
from .models import IdTokenClaims, PkceCredential, SigningKey, TokenResponse, UserInfo
from .pkce import generate_code_challenge, generate_pkce, generate_state
from .providers import (
    APPLE_ENDPOINTS,
    GOOGLE_ENDPOINTS,
    AppleProvider,
    GoogleProvider,
    Provider,
    ProviderEndpoints,
)
from .verifier import IdTokenVerifier

__all__ = [
    "PkceCredential",
    "TokenResponse",
    "UserInfo",
    "SigningKey",
    "IdTokenClaims",
    "generate_state",
    "generate_pkce",
    "generate_code_challenge",
    "exchange_code",
    "exchange_code_async",
    "KeyResolver",
    "JwksKeyCache",
    "parse_jwks",
    "IdTokenVerifier",
    "generate_apple_client_secret",
    "Provider",
    "ProviderEndpoints",
    "GoogleProvider",
    "AppleProvider",
    "GOOGLE_ENDPOINTS",
    "APPLE_ENDPOINTS",
    "JwksCacheConfig",
    "GoogleConfig",
    "AppleConfig",
    "OAuth2Error",
    "OAuth2ErrorCodes",
]
