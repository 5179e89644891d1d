"""プロバイダ設定モデルのユニットテスト"""

import pytest
from k1s0_oauth2.config import AppleConfig, GoogleConfig, JwksCacheConfig
from pydantic import ValidationError


def test_jwks_cache_defaults() -> None:
    """JWKS キャッシュの既定値は TTL 1 時間・タイムアウト 10 秒であること。"""
    config = JwksCacheConfig()
    assert config.ttl_seconds == 3600
    assert config.http_timeout == 10.0


@pytest.mark.parametrize("field", ["ttl_seconds", "http_timeout"])
def test_jwks_cache_rejects_non_positive(field: str) -> None:
    """0 以下の TTL / タイムアウトは拒否されること。"""
    with pytest.raises(ValidationError):
        JwksCacheConfig(**{field: 0})


def test_google_config_default_scopes() -> None:
    """Google の既定スコープ。"""
    config = GoogleConfig(client_id="id", client_secret="secret", redirect_uri="https://app/cb")
    assert config.scopes == ["openid", "email", "profile"]


def test_apple_config_defaults() -> None:
    """Apple 設定の既定値。"""
    config = AppleConfig.model_validate(
        {
            "client_id": "com.example.app",
            "team_id": "TEAM",
            "key_id": "KEY",
            "private_key_pem": "pem",
            "redirect_uri": "https://app/cb",
            "jwks": {"ttl_seconds": 600},
        }
    )
    assert config.scopes == ["name", "email"]
    assert config.clock_skew_seconds == 60
    assert config.jwks.ttl_seconds == 600
    assert config.jwks.http_timeout == 10.0


def test_apple_config_requires_key_material() -> None:
    """必須項目が欠けている場合は ValidationError になること。"""
    with pytest.raises(ValidationError):
        AppleConfig(client_id="com.example.app", team_id="TEAM", redirect_uri="https://app/cb")


def test_apple_config_rejects_negative_skew() -> None:
    """負のクロックスキュー許容値は拒否されること。"""
    with pytest.raises(ValidationError):
        AppleConfig(
            client_id="c",
            team_id="t",
            key_id="k",
            private_key_pem="pem",
            redirect_uri="https://app/cb",
            clock_skew_seconds=-1,
        )
