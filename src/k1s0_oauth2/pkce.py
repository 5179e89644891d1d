"""OAuth2 PKCE / state 生成"""

from __future__ import annotations

import base64
import hashlib
import os

from .exceptions import OAuth2Error, OAuth2ErrorCodes
from .models import PkceCredential


def _random_bytes(byte_length: int) -> bytes:
    if byte_length <= 0:
        raise ValueError(f"byte_length must be positive: {byte_length}")
    try:
        return os.urandom(byte_length)
    except (OSError, NotImplementedError) as e:
        raise OAuth2Error(
            code=OAuth2ErrorCodes.RANDOM_SOURCE_ERROR,
            message=f"Failed to read from system random source: {e}",
            cause=e,
        ) from e


def generate_state(byte_length: int = 32) -> str:
    """CSRF 対策用の state を生成する。

    Args:
        byte_length: ランダムバイト数

    Returns:
        パディング付き URL-safe base64 文字列

    Raises:
        OAuth2Error: 乱数源の読み取りに失敗した場合 (RANDOM_SOURCE_ERROR)
    """
    return base64.urlsafe_b64encode(_random_bytes(byte_length)).decode("ascii")


def generate_code_challenge(verifier: str) -> str:
    """コードベリファイアから S256 コードチャレンジを生成する。"""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce(byte_length: int = 32) -> PkceCredential:
    """PKCE のベリファイアとチャレンジを生成する（RFC 7636, S256）。

    Args:
        byte_length: ランダムバイト数（32 で 43 文字のベリファイアになる）

    Raises:
        OAuth2Error: 乱数源の読み取りに失敗した場合 (RANDOM_SOURCE_ERROR)
    """
    raw = _random_bytes(byte_length)
    verifier = base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")
    return PkceCredential(verifier=verifier, challenge=generate_code_challenge(verifier))
