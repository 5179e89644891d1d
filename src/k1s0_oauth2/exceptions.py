"""oauth2 ライブラリの例外型定義"""

from __future__ import annotations


class OAuth2Error(Exception):
    """oauth2 ライブラリのエラー基底クラス。"""

    def __init__(
        self,
        code: str,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class OAuth2ErrorCodes:
    """OAuth2Error のエラーコード定数。"""

    RANDOM_SOURCE_ERROR: str = "RANDOM_SOURCE_ERROR"
    TOKEN_EXCHANGE_FAILED: str = "TOKEN_EXCHANGE_FAILED"
    USERINFO_FAILED: str = "USERINFO_FAILED"
    CLIENT_SECRET_ERROR: str = "CLIENT_SECRET_ERROR"
    JWKS_FETCH_FAILED: str = "JWKS_FETCH_FAILED"
    JWKS_DECODE_FAILED: str = "JWKS_DECODE_FAILED"
    KEY_NOT_FOUND: str = "KEY_NOT_FOUND"
    MALFORMED_TOKEN: str = "MALFORMED_TOKEN"
    KEY_RESOLUTION_FAILED: str = "KEY_RESOLUTION_FAILED"
    SIGNATURE_INVALID: str = "SIGNATURE_INVALID"
    MISSING_CLAIM: str = "MISSING_CLAIM"
    TOKEN_EXPIRED: str = "TOKEN_EXPIRED"
    TOKEN_NOT_YET_VALID: str = "TOKEN_NOT_YET_VALID"
    INVALID_AUDIENCE: str = "INVALID_AUDIENCE"
    INVALID_ISSUER: str = "INVALID_ISSUER"
