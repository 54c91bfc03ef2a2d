"""JWT verification for Supabase access tokens.

Tokens are signed by Supabase Auth with the project's shared secret
(HS256) and carry the ``authenticated`` audience.
"""

import jwt

from app.config import settings
from app.schemas.auth import JWTClaims
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class JWTVerifier:
    """JWT verifier for Supabase access tokens."""

    def __init__(self, supabase_url: str, jwt_secret: str = "", audience: str = "authenticated"):
        """Initialize JWT verifier.

        Args:
            supabase_url: Supabase project URL for issuer validation
            jwt_secret: Supabase JWT secret for HS256 verification
            audience: Expected ``aud`` claim
        """
        self.supabase_url = supabase_url.rstrip("/")
        self.expected_issuer = f"{self.supabase_url}/auth/v1"
        self.jwt_secret = jwt_secret
        self.audience = audience

    def verify_token(self, token: str) -> JWTClaims:
        """Verify and decode a Supabase JWT token.

        Args:
            token: JWT access token from Authorization header

        Returns:
            Decoded and validated JWT claims

        Raises:
            jwt.ExpiredSignatureError: If the token has expired
            jwt.InvalidTokenError: If the token is otherwise invalid
        """
        if not self.jwt_secret:
            raise jwt.InvalidTokenError("SUPABASE_JWT_SECRET is not configured")

        try:
            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=["HS256"],
                audience=self.audience,
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            LOGGER.info("Rejected expired token")
            raise
        except jwt.InvalidTokenError as e:
            LOGGER.warning("Rejected invalid token", extra={"error": str(e)})
            raise

        issuer = payload.get("iss")
        if issuer is not None and issuer != self.expected_issuer:
            LOGGER.warning("Rejected token from unexpected issuer", extra={"issuer": issuer})
            raise jwt.InvalidIssuerError(f"Invalid issuer: {issuer}")

        return JWTClaims(**payload)


# Global JWT verifier instance
jwt_verifier = JWTVerifier(
    supabase_url=settings.supabase_url,
    jwt_secret=settings.supabase_jwt_secret,
    audience=settings.supabase_jwt_audience,
)
