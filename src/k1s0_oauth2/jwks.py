"""JWKS 公開鍵リゾルバとキャッシュ"""

from __future__ import annotations

import asyncio
import base64
import functools
import re
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from cryptography.hazmat.primitives.asymmetric import ec

from .config import JwksCacheConfig
from .exceptions import OAuth2Error, OAuth2ErrorCodes
from .exchange import DEFAULT_HTTP_TIMEOUT, effective_timeout
from .models import SigningKey

logger = structlog.stdlib.get_logger(__name__)

DEFAULT_JWKS_TTL_SECONDS = 3600

_CURVES: dict[str, type[ec.EllipticCurve]] = {
    "P-256": ec.SECP256R1,
    "P-384": ec.SECP384R1,
    "P-521": ec.SECP521R1,
}

_B64URL_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def _b64url_to_int(value: Any) -> int:
    """パディングなし base64url をビッグエンディアン整数にデコードする。

    Raises:
        ValueError: 文字列でない、またはデコードできない場合
    """
    if not isinstance(value, str) or not _B64URL_RE.match(value):
        raise ValueError("coordinate is not unpadded base64url")
    padded = value + "=" * (-len(value) % 4)
    return int.from_bytes(base64.urlsafe_b64decode(padded), "big")


def _parse_key(entry: Any) -> SigningKey | None:
    if not isinstance(entry, dict):
        return None
    if entry.get("kty") != "EC" or entry.get("use") != "sig":
        return None
    kid = entry.get("kid")
    crv = entry.get("crv")
    curve = _CURVES.get(crv) if isinstance(crv, str) else None
    if not isinstance(kid, str) or not kid or curve is None:
        return None
    try:
        x = _b64url_to_int(entry.get("x"))
        y = _b64url_to_int(entry.get("y"))
        public_key = ec.EllipticCurvePublicNumbers(x, y, curve()).public_key()
    except ValueError:
        return None
    return SigningKey(kid=kid, curve=crv, public_key=public_key, alg=entry.get("alg", ""))


def parse_jwks(document: Any) -> dict[str, SigningKey]:
    """JWKS ドキュメントから kid -> SigningKey の辞書を構築する。

    kty=EC かつ use=sig の鍵のみを採用する。未知の曲線やデコードできない座標を
    持つエントリは読み飛ばす。

    Raises:
        ValueError: keys 配列を持たないドキュメントの場合
    """
    if not isinstance(document, dict) or not isinstance(document.get("keys"), list):
        raise ValueError("JWKS document has no keys array")
    keys: dict[str, SigningKey] = {}
    for entry in document["keys"]:
        key = _parse_key(entry)
        if key is not None:
            keys[key.kid] = key
    return keys


@dataclass(frozen=True)
class _KeySet:
    keys: Mapping[str, SigningKey]
    expires_at: float


class KeyResolver(ABC):
    """kid から署名検証鍵を解決するリゾルバの抽象基底クラス。"""

    @abstractmethod
    def get_key(self, kid: str, *, timeout: float | None = None) -> SigningKey:
        """kid に対応する鍵を返す。"""
        ...

    @abstractmethod
    async def get_key_async(self, kid: str, *, timeout: float | None = None) -> SigningKey:
        """非同期で kid に対応する鍵を返す。"""
        ...


class JwksKeyCache(KeyResolver):
    """JWKS エンドポイントの公開鍵を TTL 付きでキャッシュするリゾルバ。

    参照と更新は単一のロックで直列化する。更新中の HTTP 取得もロック内で行うため、
    同時に実行される取得は常に 1 件だけで、待機中の呼び出しは更新結果を共有する。
    キャッシュが有効な間は未知の kid でも再取得しない。
    """

    def __init__(
        self,
        jwks_uri: str,
        ttl_seconds: float = DEFAULT_JWKS_TTL_SECONDS,
        now: Callable[[], float] | None = None,
        http_timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        self._jwks_uri = jwks_uri
        self._ttl_seconds = ttl_seconds
        self._now = now or time.time
        self._http_timeout = http_timeout
        self._lock = threading.Lock()
        self._key_set = _KeySet(keys={}, expires_at=0.0)

    @classmethod
    def from_config(
        cls,
        jwks_uri: str,
        config: JwksCacheConfig,
        now: Callable[[], float] | None = None,
    ) -> JwksKeyCache:
        return cls(
            jwks_uri,
            ttl_seconds=config.ttl_seconds,
            now=now,
            http_timeout=config.http_timeout,
        )

    @property
    def jwks_uri(self) -> str:
        return self._jwks_uri

    def is_fresh(self) -> bool:
        """キャッシュが有効期限内か確認する。"""
        return self._now() < self._key_set.expires_at

    def invalidate(self) -> None:
        """キャッシュを破棄し、次回の参照で再取得させる。"""
        with self._lock:
            self._key_set = _KeySet(keys={}, expires_at=0.0)

    def get_key(self, kid: str, *, timeout: float | None = None) -> SigningKey:
        """kid に対応する鍵を返す。キャッシュ期限切れの場合は JWKS を再取得する。

        Args:
            kid: JWT ヘッダーの key id
            timeout: 再取得時の呼び出し単位タイムアウト秒

        Raises:
            OAuth2Error: KEY_NOT_FOUND / JWKS_FETCH_FAILED / JWKS_DECODE_FAILED
        """
        with self._lock:
            key_set = self._key_set
            if self._now() >= key_set.expires_at:
                key_set = self._refresh(timeout)
            key = key_set.keys.get(kid)
            if key is None:
                logger.info("jwks key not found", kid=kid, jwks_uri=self._jwks_uri)
                raise OAuth2Error(
                    code=OAuth2ErrorCodes.KEY_NOT_FOUND,
                    message=f"Key {kid} not found in JWKS",
                )
            return key

    async def get_key_async(self, kid: str, *, timeout: float | None = None) -> SigningKey:
        """非同期で鍵を返す（同期版をエグゼキュータで実行し、同じロックを共有する）。

        timeout は再取得時の HTTP リクエストに適用されるため、待機側のキャンセル後も
        取得処理はこの秒数以内に終了する。
        """
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, functools.partial(self.get_key, kid, timeout=timeout))

    def _fetch(self, timeout: float | None) -> Any:
        try:
            with httpx.Client(timeout=effective_timeout(timeout, self._http_timeout)) as client:
                resp = client.get(self._jwks_uri)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise OAuth2Error(
                code=OAuth2ErrorCodes.JWKS_FETCH_FAILED,
                message=f"Failed to fetch JWKS from {self._jwks_uri}: {e}",
                cause=e,
            ) from e
        if resp.status_code != 200:
            raise OAuth2Error(
                code=OAuth2ErrorCodes.JWKS_FETCH_FAILED,
                message=f"JWKS endpoint returned status {resp.status_code}",
            )
        try:
            return resp.json()
        except ValueError as e:
            raise OAuth2Error(
                code=OAuth2ErrorCodes.JWKS_DECODE_FAILED,
                message=f"Failed to decode JWKS: {e}",
                cause=e,
            ) from e

    def _refresh(self, timeout: float | None) -> _KeySet:
        # 呼び出し元がロックを保持していること
        document = self._fetch(timeout)
        try:
            keys = parse_jwks(document)
        except ValueError as e:
            raise OAuth2Error(
                code=OAuth2ErrorCodes.JWKS_DECODE_FAILED,
                message=f"Failed to decode JWKS: {e}",
                cause=e,
            ) from e
        key_set = _KeySet(keys=keys, expires_at=self._now() + self._ttl_seconds)
        self._key_set = key_set
        logger.info("jwks refreshed", jwks_uri=self._jwks_uri, keys_count=len(keys))
        return key_set
