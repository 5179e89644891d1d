"""Google / Apple の OAuth2 プロバイダ実装"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx
import structlog

from .client_secret import generate_apple_client_secret
from .config import AppleConfig, GoogleConfig
from .exceptions import OAuth2Error, OAuth2ErrorCodes
from .exchange import effective_timeout, exchange_code, exchange_code_async
from .jwks import JwksKeyCache, KeyResolver
from .models import IdTokenClaims, PkceCredential, TokenResponse, UserInfo
from .verifier import IdTokenVerifier

logger = structlog.stdlib.get_logger(__name__)


@dataclass(frozen=True)
class ProviderEndpoints:
    """プロバイダごとのエンドポイントと発行者。"""

    name: str
    authorize_url: str
    token_url: str
    issuer: str = ""
    jwks_uri: str = ""
    userinfo_url: str = ""


GOOGLE_ENDPOINTS = ProviderEndpoints(
    name="google",
    authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
    token_url="https://oauth2.googleapis.com/token",
    issuer="https://accounts.google.com",
    userinfo_url="https://www.googleapis.com/oauth2/v3/userinfo",
)

APPLE_ENDPOINTS = ProviderEndpoints(
    name="apple",
    authorize_url="https://appleid.apple.com/auth/authorize",
    token_url="https://appleid.apple.com/auth/token",
    issuer="https://appleid.apple.com",
    jwks_uri="https://appleid.apple.com/auth/keys",
)


class Provider(ABC):
    """OAuth2 プロバイダ抽象基底クラス。

    トークン交換の HTTP 処理は共通で、プロバイダごとの差分は
    エンドポイント定義とクライアントシークレットの作り方だけに置く。
    """

    def __init__(
        self,
        endpoints: ProviderEndpoints,
        client_id: str,
        redirect_uri: str,
        scopes: list[str],
    ) -> None:
        self.endpoints = endpoints
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.scopes = scopes

    @property
    def name(self) -> str:
        return self.endpoints.name

    @abstractmethod
    def _client_secret(self) -> str:
        """トークン交換に使うクライアントシークレットを返す。"""
        ...

    def _authorization_params(self, scopes: list[str]) -> dict[str, str]:
        return {}

    def authorization_url(
        self,
        state: str,
        pkce: PkceCredential,
        scopes: list[str] | None = None,
    ) -> str:
        """ユーザーをリダイレクトする認可 URL を組み立てる。"""
        scopes = self.scopes if scopes is None else scopes
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "state": state,
            "code_challenge": pkce.challenge,
            "code_challenge_method": pkce.method,
        }
        if scopes:
            params["scope"] = " ".join(scopes)
        params.update(self._authorization_params(scopes))
        return f"{self.endpoints.authorize_url}?{urlencode(params)}"

    def exchange_code(
        self, code: str, code_verifier: str, *, timeout: float | None = None
    ) -> TokenResponse:
        """認可コードをトークンに交換する。"""
        return exchange_code(
            self.endpoints.token_url,
            code,
            self.client_id,
            self._client_secret(),
            self.redirect_uri,
            code_verifier,
            timeout=timeout,
        )

    async def exchange_code_async(
        self, code: str, code_verifier: str, *, timeout: float | None = None
    ) -> TokenResponse:
        """非同期で認可コードをトークンに交換する。"""
        return await exchange_code_async(
            self.endpoints.token_url,
            code,
            self.client_id,
            self._client_secret(),
            self.redirect_uri,
            code_verifier,
            timeout=timeout,
        )


class GoogleProvider(Provider):
    """Google OAuth2 プロバイダ。"""

    def __init__(self, config: GoogleConfig, endpoints: ProviderEndpoints = GOOGLE_ENDPOINTS) -> None:
        super().__init__(endpoints, config.client_id, config.redirect_uri, config.scopes)
        self._config = config

    def _client_secret(self) -> str:
        return self._config.client_secret

    def get_user_info(self, access_token: str, *, timeout: float | None = None) -> UserInfo:
        """userinfo エンドポイントからユーザープロファイルを取得する。

        Raises:
            OAuth2Error: 取得に失敗した場合 (USERINFO_FAILED)
        """
        try:
            with httpx.Client(timeout=effective_timeout(timeout)) as client:
                resp = client.get(self.endpoints.userinfo_url, headers=_bearer(access_token))
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("userinfo transport error", reason=type(e).__name__)
            raise _userinfo_failed() from None
        return _parse_user_info(resp)

    async def get_user_info_async(self, access_token: str, *, timeout: float | None = None) -> UserInfo:
        """非同期でユーザープロファイルを取得する。"""
        try:
            async with httpx.AsyncClient(timeout=effective_timeout(timeout)) as client:
                resp = await client.get(self.endpoints.userinfo_url, headers=_bearer(access_token))
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("userinfo transport error", reason=type(e).__name__)
            raise _userinfo_failed() from None
        return _parse_user_info(resp)


class AppleProvider(Provider):
    """Sign in with Apple プロバイダ。

    クライアントシークレットは交換ごとに ES256 JWT として生成する。
    ID トークンは Apple の JWKS で署名とクレームを検証する。
    """

    def __init__(
        self,
        config: AppleConfig,
        key_cache: KeyResolver | None = None,
        now: Callable[[], float] | None = None,
        endpoints: ProviderEndpoints = APPLE_ENDPOINTS,
    ) -> None:
        super().__init__(endpoints, config.client_id, config.redirect_uri, config.scopes)
        self._config = config
        self._now = now or time.time
        self._key_cache = key_cache or JwksKeyCache.from_config(
            endpoints.jwks_uri, config.jwks, now=self._now
        )
        self._verifier = IdTokenVerifier(
            self._key_cache,
            issuer=endpoints.issuer,
            clock_skew_seconds=config.clock_skew_seconds,
            now=self._now,
        )

    @property
    def key_cache(self) -> KeyResolver:
        return self._key_cache

    def _client_secret(self) -> str:
        return generate_apple_client_secret(
            self._config.team_id,
            self._config.client_id,
            self._config.key_id,
            self._config.private_key_pem,
            now=self._now(),
        )

    def _authorization_params(self, scopes: list[str]) -> dict[str, str]:
        # スコープを要求する場合 Apple は form_post のみ受け付ける
        return {"response_mode": "form_post"} if scopes else {}

    def verify_id_token(
        self, token: str, audience: str | None = None, *, timeout: float | None = None
    ) -> IdTokenClaims:
        """Apple の ID トークンを検証する。aud の既定値は client_id。"""
        return self._verifier.verify(token, audience or self.client_id, timeout=timeout)

    async def verify_id_token_async(
        self, token: str, audience: str | None = None, *, timeout: float | None = None
    ) -> IdTokenClaims:
        """非同期で Apple の ID トークンを検証する。"""
        return await self._verifier.verify_async(token, audience or self.client_id, timeout=timeout)

    def exchange_and_verify(
        self, code: str, code_verifier: str, *, timeout: float | None = None
    ) -> tuple[TokenResponse, IdTokenClaims]:
        """認可コードを交換し、返却された ID トークンを検証する。"""
        tokens = self.exchange_code(code, code_verifier, timeout=timeout)
        return tokens, self.verify_id_token(_require_id_token(tokens), timeout=timeout)

    async def exchange_and_verify_async(
        self, code: str, code_verifier: str, *, timeout: float | None = None
    ) -> tuple[TokenResponse, IdTokenClaims]:
        """非同期で認可コードを交換し、ID トークンを検証する。"""
        tokens = await self.exchange_code_async(code, code_verifier, timeout=timeout)
        return tokens, await self.verify_id_token_async(_require_id_token(tokens), timeout=timeout)


def _require_id_token(tokens: TokenResponse) -> str:
    if not tokens.id_token:
        raise OAuth2Error(
            code=OAuth2ErrorCodes.MALFORMED_TOKEN,
            message="token response has no id_token",
        )
    return tokens.id_token


def _bearer(access_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


def _userinfo_failed() -> OAuth2Error:
    return OAuth2Error(
        code=OAuth2ErrorCodes.USERINFO_FAILED,
        message="userinfo request failed",
    )


def _parse_user_info(resp: httpx.Response) -> UserInfo:
    if resp.status_code != 200:
        logger.warning("userinfo rejected", status_code=resp.status_code)
        raise _userinfo_failed()
    try:
        data: Any = resp.json()
        return UserInfo.from_response(data)
    except (TypeError, ValueError):
        logger.warning("userinfo response undecodable")
        raise _userinfo_failed() from None
