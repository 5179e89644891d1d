"""プロバイダ設定型定義（pydantic BaseModel）"""

from __future__ import annotations

from pydantic import BaseModel, Field


class JwksCacheConfig(BaseModel):
    """JWKS キャッシュ設定。"""

    ttl_seconds: float = Field(default=3600, gt=0)
    http_timeout: float = Field(default=10.0, gt=0)


class GoogleConfig(BaseModel):
    """Google OAuth2 クライアント設定。"""

    client_id: str
    client_secret: str
    redirect_uri: str
    scopes: list[str] = Field(default_factory=lambda: ["openid", "email", "profile"])


class AppleConfig(BaseModel):
    """Sign in with Apple クライアント設定。"""

    client_id: str
    team_id: str
    key_id: str
    private_key_pem: str  # PKCS8 PEM の P-256 秘密鍵
    redirect_uri: str
    scopes: list[str] = Field(default_factory=lambda: ["name", "email"])
    clock_skew_seconds: int = Field(default=60, ge=0)
    jwks: JwksCacheConfig = Field(default_factory=JwksCacheConfig)
