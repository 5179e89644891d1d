"""OAuth2 Authorization Code (+PKCE) トークン交換"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from .exceptions import OAuth2Error, OAuth2ErrorCodes
from .models import TokenResponse

logger = structlog.stdlib.get_logger(__name__)

DEFAULT_HTTP_TIMEOUT = 10.0


def effective_timeout(timeout: float | None, limit: float = DEFAULT_HTTP_TIMEOUT) -> float:
    """呼び出し元のタイムアウトとクライアント上限の短い方を返す。"""
    if timeout is None:
        return limit
    return min(timeout, limit)


def _exchange_failed() -> OAuth2Error:
    # プロバイダのエラーボディは呼び出し元へ渡さない
    return OAuth2Error(
        code=OAuth2ErrorCodes.TOKEN_EXCHANGE_FAILED,
        message="token exchange failed",
    )


def _build_form(
    code: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    code_verifier: str,
) -> dict[str, str]:
    return {
        "code": code,
        "client_id": client_id,
        "client_secret": client_secret,
        "redirect_uri": redirect_uri,
        "grant_type": "authorization_code",
        "code_verifier": code_verifier,
    }


def _parse_response(resp: httpx.Response, token_url: str) -> TokenResponse:
    if resp.status_code != 200:
        logger.warning(
            "token exchange rejected", token_url=token_url, status_code=resp.status_code
        )
        raise _exchange_failed()
    try:
        data: Any = resp.json()
        return TokenResponse.from_response(data)
    except (TypeError, ValueError):
        logger.warning("token exchange response undecodable", token_url=token_url)
        raise _exchange_failed() from None


def exchange_code(
    token_url: str,
    code: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    code_verifier: str,
    *,
    timeout: float | None = None,
) -> TokenResponse:
    """認可コードと PKCE ベリファイアをトークンに交換する。

    リトライは行わない。失敗はすべて TOKEN_EXCHANGE_FAILED に集約する。

    Args:
        token_url: プロバイダのトークンエンドポイント
        timeout: 呼び出し単位のタイムアウト秒（10 秒を上限とする）

    Raises:
        OAuth2Error: 交換に失敗した場合 (TOKEN_EXCHANGE_FAILED)
    """
    form = _build_form(code, client_id, client_secret, redirect_uri, code_verifier)
    try:
        with httpx.Client(timeout=effective_timeout(timeout)) as client:
            resp = client.post(token_url, data=form)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning("token exchange transport error", token_url=token_url, reason=type(e).__name__)
        raise _exchange_failed() from None
    return _parse_response(resp, token_url)


async def exchange_code_async(
    token_url: str,
    code: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    code_verifier: str,
    *,
    timeout: float | None = None,
) -> TokenResponse:
    """非同期で認可コードをトークンに交換する。タスクのキャンセルでも中断できる。"""
    form = _build_form(code, client_id, client_secret, redirect_uri, code_verifier)
    try:
        async with httpx.AsyncClient(timeout=effective_timeout(timeout)) as client:
            resp = await client.post(token_url, data=form)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning("token exchange transport error", token_url=token_url, reason=type(e).__name__)
        raise _exchange_failed() from None
    return _parse_response(resp, token_url)
