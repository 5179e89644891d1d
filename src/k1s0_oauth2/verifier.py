"""ID トークン検証"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from typing import Any

import jwt
import structlog

from .exceptions import OAuth2Error, OAuth2ErrorCodes
from .jwks import KeyResolver
from .models import IdTokenClaims, SigningKey

logger = structlog.stdlib.get_logger(__name__)

DEFAULT_CLOCK_SKEW_SECONDS = 60

# 楕円曲線署名以外は受け付けない（アルゴリズム差し替え攻撃の防止）
EC_ALGORITHMS = ["ES256", "ES384", "ES512"]

# 時刻・aud・iss は署名検証後に自前で検証する
_DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_aud": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
}


def _is_number(value: Any) -> bool:
    # NaN / Infinity は JSON から復元できるが時刻としては無効
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


class IdTokenVerifier:
    """JWKS の公開鍵で ID トークンの署名とクレームを検証するクラス。

    処理順:
        1. 署名未検証のヘッダーから kid を取り出す
        2. リゾルバで kid に対応する公開鍵を解決する
        3. 楕円曲線アルゴリズムに限定して署名を検証する
        4. exp / iat / aud / iss を検証する

    署名検証が成功するまで、どのクレームも信用しない。
    """

    def __init__(
        self,
        resolver: KeyResolver,
        issuer: str,
        clock_skew_seconds: int = DEFAULT_CLOCK_SKEW_SECONDS,
        now: Callable[[], float] | None = None,
    ) -> None:
        self._resolver = resolver
        self._issuer = issuer
        self._clock_skew_seconds = clock_skew_seconds
        self._now = now or time.time

    @property
    def issuer(self) -> str:
        return self._issuer

    def verify(
        self, token: str, expected_audience: str, *, timeout: float | None = None
    ) -> IdTokenClaims:
        """ID トークンを同期検証する。

        Args:
            token: 検証する JWT 文字列
            expected_audience: 期待する aud（完全一致）
            timeout: JWKS 再取得時の呼び出し単位タイムアウト秒

        Raises:
            OAuth2Error: MALFORMED_TOKEN / KEY_RESOLUTION_FAILED / SIGNATURE_INVALID /
                MISSING_CLAIM / TOKEN_EXPIRED / TOKEN_NOT_YET_VALID /
                INVALID_AUDIENCE / INVALID_ISSUER
        """
        try:
            kid = _read_kid(token)
            try:
                key = self._resolver.get_key(kid, timeout=timeout)
            except OAuth2Error as e:
                raise _resolution_failed(kid, e) from e
            payload = _decode(token, key)
            return self._validate_claims(payload, expected_audience)
        except OAuth2Error as e:
            logger.info("id token rejected", code=e.code, issuer=self._issuer)
            raise

    async def verify_async(
        self, token: str, expected_audience: str, *, timeout: float | None = None
    ) -> IdTokenClaims:
        """ID トークンを非同期検証する。timeout は JWKS 再取得に適用される。"""
        try:
            kid = _read_kid(token)
            try:
                key = await self._resolver.get_key_async(kid, timeout=timeout)
            except OAuth2Error as e:
                raise _resolution_failed(kid, e) from e
            payload = _decode(token, key)
            return self._validate_claims(payload, expected_audience)
        except OAuth2Error as e:
            logger.info("id token rejected", code=e.code, issuer=self._issuer)
            raise

    def _validate_claims(self, payload: dict[str, Any], expected_audience: str) -> IdTokenClaims:
        now = self._now()
        skew = self._clock_skew_seconds

        exp = payload.get("exp")
        if not _is_number(exp):
            raise _claim_error(OAuth2ErrorCodes.MISSING_CLAIM, "missing exp claim")
        if now > exp + skew:
            raise _claim_error(OAuth2ErrorCodes.TOKEN_EXPIRED, "token has expired")

        if "iat" in payload:
            iat = payload["iat"]
            if not _is_number(iat):
                raise _claim_error(OAuth2ErrorCodes.MALFORMED_TOKEN, "iat claim is not numeric")
            if iat > now + skew:
                raise _claim_error(OAuth2ErrorCodes.TOKEN_NOT_YET_VALID, "token issued in the future")

        # 文字列以外の aud / iss は欠落として扱う
        aud = payload.get("aud")
        if not isinstance(aud, str):
            raise _claim_error(OAuth2ErrorCodes.MISSING_CLAIM, "missing aud claim")
        if aud != expected_audience:
            raise _claim_error(OAuth2ErrorCodes.INVALID_AUDIENCE, "invalid audience")

        iss = payload.get("iss")
        if not isinstance(iss, str):
            raise _claim_error(OAuth2ErrorCodes.MISSING_CLAIM, "missing iss claim")
        if iss != self._issuer:
            raise _claim_error(OAuth2ErrorCodes.INVALID_ISSUER, "invalid issuer")

        return IdTokenClaims.from_payload(payload)


def _claim_error(code: str, message: str) -> OAuth2Error:
    return OAuth2Error(code=code, message=message)


def _resolution_failed(kid: str, cause: OAuth2Error) -> OAuth2Error:
    return OAuth2Error(
        code=OAuth2ErrorCodes.KEY_RESOLUTION_FAILED,
        message=f"Failed to resolve signing key {kid}: {cause}",
        cause=cause,
    )


def _read_kid(token: str) -> str:
    try:
        header = jwt.get_unverified_header(token)
    except jwt.PyJWTError as e:
        raise OAuth2Error(
            code=OAuth2ErrorCodes.MALFORMED_TOKEN,
            message=f"Failed to parse token: {e}",
            cause=e,
        ) from e
    kid = header.get("kid")
    if not isinstance(kid, str) or not kid:
        raise OAuth2Error(
            code=OAuth2ErrorCodes.MALFORMED_TOKEN,
            message="missing kid in token header",
        )
    return kid


def _decode(token: str, key: SigningKey) -> dict[str, Any]:
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            key.public_key,
            algorithms=EC_ALGORITHMS,
            options=_DECODE_OPTIONS,
        )
    except jwt.PyJWTError as e:
        raise OAuth2Error(
            code=OAuth2ErrorCodes.SIGNATURE_INVALID,
            message=f"Token verification failed: {e}",
            cause=e,
        ) from e
    return payload
