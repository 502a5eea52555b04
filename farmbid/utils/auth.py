from typing import Optional

import jwt
from pydantic import BaseModel

from . import log

logger = log.get_logger(__name__)


class AuthClientConfig(BaseModel):
    jwk_url: Optional[str] = None
    audience: Optional[str] = None
    issuer: Optional[str] = None


class AuthClient:
    """Verifies bearer JWTs against the identity provider's JWKS."""

    def __init__(self, config: AuthClientConfig):
        if not config.jwk_url:
            raise ValueError("AUTH_OIDC_JWK_URL must be set when authentication is enabled")
        self.config = config
        self.jwks_client = jwt.PyJWKClient(config.jwk_url, cache_keys=True)

    def decode_jwt(self, token: str) -> Optional[dict]:
        try:
            signing_key = self.jwks_client.get_signing_key_from_jwt(token)
            return jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256", "ES256"],
                audience=self.config.audience,
                issuer=self.config.issuer,
                options={
                    "verify_aud": self.config.audience is not None,
                    "verify_iss": self.config.issuer is not None,
                },
            )
        except jwt.PyJWTError as e:
            logger.info(f"Rejected bearer token: {e}")
            return None
