"""OAuth2 / OIDC 関連データモデル"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from cryptography.hazmat.primitives.asymmetric.ec import EllipticCurvePublicKey

_STANDARD_CLAIMS = {"sub", "iss", "aud", "exp", "iat", "email", "email_verified"}


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _optional_int(value: Any) -> int | None:
    # 解釈できない値は None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value)
    return None


@dataclass(frozen=True)
class PkceCredential:
    """PKCE のコードベリファイアと S256 コードチャレンジの組。"""

    verifier: str
    challenge: str
    method: str = "S256"


@dataclass(frozen=True)
class TokenResponse:
    """トークンエンドポイントのレスポンス。"""

    access_token: str
    token_type: str = "Bearer"
    id_token: str | None = None
    expires_in: int | None = None
    refresh_token: str | None = None
    scope: str = ""

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> TokenResponse:
        """トークンエンドポイントの JSON から TokenResponse を生成する。

        Raises:
            ValueError: access_token を含まない場合
        """
        if not isinstance(response, dict):
            raise ValueError("token response is not a JSON object")
        access_token = response.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("token response has no access_token")
        return cls(
            access_token=access_token,
            token_type=_optional_str(response.get("token_type")) or "Bearer",
            id_token=_optional_str(response.get("id_token")),
            expires_in=_optional_int(response.get("expires_in")),
            refresh_token=_optional_str(response.get("refresh_token")),
            scope=_optional_str(response.get("scope")) or "",
        )


@dataclass
class UserInfo:
    """Google userinfo エンドポイントのユーザープロファイル。"""

    sub: str
    email: str = ""
    email_verified: bool = False
    name: str = ""
    picture: str = ""

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> UserInfo:
        if not isinstance(response, dict) or not response.get("sub"):
            raise ValueError("userinfo response has no sub")
        return cls(
            sub=str(response["sub"]),
            email=response.get("email", ""),
            email_verified=bool(response.get("email_verified", False)),
            name=response.get("name", ""),
            picture=response.get("picture", ""),
        )


@dataclass(frozen=True)
class SigningKey:
    """署名検証に使う楕円曲線公開鍵。"""

    kid: str
    curve: str
    public_key: EllipticCurvePublicKey
    alg: str = ""


def _parse_bool(value: Any) -> bool | None:
    # Apple は email_verified を "true" / "false" の文字列で返すことがある
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() == "true"
    return None


@dataclass
class IdTokenClaims:
    """検証済み ID トークンのクレーム。"""

    sub: str
    iss: str
    aud: str
    exp: int
    iat: int | None = None
    email: str | None = None
    email_verified: bool | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> IdTokenClaims:
        """検証済み JWT ペイロードを IdTokenClaims に変換する。"""
        iat = payload.get("iat")
        return cls(
            sub=str(payload.get("sub", "")),
            iss=payload["iss"],
            aud=payload["aud"],
            exp=int(payload["exp"]),
            iat=int(iat) if iat is not None else None,
            email=payload.get("email"),
            email_verified=_parse_bool(payload.get("email_verified")),
            extra={k: v for k, v in payload.items() if k not in _STANDARD_CLAIMS},
            raw=dict(payload),
        )
