# SPDX-License-Identifier: Apache-2.0

"""
Authentication service for JWT token management and password hashing.

Tokens are signed with RS256 and carry the user's role; passwords are hashed
with bcrypt.
"""

import os
import jwt
import bcrypt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Tuple
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from opentelemetry import trace
import logging

from models.entities import User
from domain.authorization import capabilities_for_role

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when authentication fails."""
    pass


class TokenValidationError(Exception):
    """Raised when token validation fails."""
    pass


class AuthService:
    """
    JWT authentication service with RS256 signing and bcrypt password hashing.
    """

    def __init__(self, private_key: Optional[str] = None, public_key: Optional[str] = None):
        """
        Initialize the authentication service.

        When no keys are given or configured through ``JWT_PRIVATE_KEY`` and
        ``JWT_PUBLIC_KEY``, a development key pair is generated in memory.

        Args:
            private_key: RS256 private key for token signing (PEM format)
            public_key: RS256 public key for token verification (PEM format)
        """
        private_key = private_key or os.getenv("JWT_PRIVATE_KEY")
        public_key = public_key or os.getenv("JWT_PUBLIC_KEY")

        if not private_key or not public_key:
            logger.warning("No JWT key pair configured, generating development key pair")
            private_key, public_key = self.generate_key_pair()

        self.private_key = private_key
        self.public_key = public_key
        self.algorithm = "RS256"
        self.access_token_expire_minutes = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "15"))
        self.refresh_token_expire_days = int(os.getenv("JWT_REFRESH_TOKEN_EXPIRE_DAYS", "7"))

    @staticmethod
    def generate_key_pair() -> Tuple[str, str]:
        """Generate a 2048-bit RSA key pair as PEM strings."""
        private_key = rsa.generate_private_key(
            public_exponent=65537,
            key_size=2048
        )

        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        ).decode('utf-8')

        public_pem = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        ).decode('utf-8')

        return private_pem, public_pem

    def hash_password(self, password: str) -> str:
        """
        Hash a password using bcrypt with salt.

        Args:
            password: Plain text password to hash

        Returns:
            Hashed password string
        """
        with tracer.start_as_current_span("auth.hash_password") as span:
            span.set_attribute("auth.operation", "hash_password")

            salt = bcrypt.gensalt(rounds=12)
            hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
            return hashed.decode('utf-8')

    def verify_password(self, password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash.

        Returns:
            True if password matches, False otherwise (including malformed hashes)
        """
        with tracer.start_as_current_span("auth.verify_password") as span:
            span.set_attribute("auth.operation", "verify_password")

            try:
                result = bcrypt.checkpw(
                    password.encode('utf-8'),
                    hashed_password.encode('utf-8')
                )
            except ValueError as e:
                span.set_attribute("auth.verification_result", "error")
                logger.error(f"Password verification error: {str(e)}")
                return False

            span.set_attribute("auth.verification_result", "success" if result else "failed")
            return result

    def _access_payload(self, user_id: str, email: Optional[str], name: Optional[str],
                        role: str, now: datetime) -> Dict[str, Any]:
        return {
            "sub": user_id,
            "email": email,
            "name": name,
            "role": role,
            "permissions": capabilities_for_role(role),
            "iat": now,
            "exp": now + timedelta(minutes=self.access_token_expire_minutes),
            "type": "access"
        }

    def generate_tokens(self, user: User) -> Dict[str, Any]:
        """
        Generate access and refresh tokens for a user.

        Args:
            user: User entity to generate tokens for

        Returns:
            Dictionary containing access_token, refresh_token, and metadata
        """
        with tracer.start_as_current_span("auth.generate_tokens") as span:
            span.set_attributes({
                "auth.operation": "generate_tokens",
                "user.id": user.id,
                "user.role": user.role
            })

            now = datetime.now(timezone.utc)
            access_payload = self._access_payload(user.id, user.email, user.name, user.role, now)
            refresh_exp = now + timedelta(days=self.refresh_token_expire_days)

            refresh_payload = {
                "sub": user.id,
                "iat": now,
                "exp": refresh_exp,
                "type": "refresh"
            }

            try:
                access_token = jwt.encode(access_payload, self.private_key, algorithm=self.algorithm)
                refresh_token = jwt.encode(refresh_payload, self.private_key, algorithm=self.algorithm)
            except (jwt.PyJWTError, ValueError, TypeError) as e:
                span.set_attribute("auth.tokens_generated", "error")
                logger.error(f"Token generation failed: {str(e)}")
                raise AuthenticationError(f"Failed to generate tokens: {str(e)}")

            span.set_attribute("auth.tokens_generated", "success")
            logger.info(
                "JWT tokens generated successfully",
                extra={
                    "user_id": user.id,
                    "role": user.role,
                    "access_expires_at": access_payload["exp"].isoformat(),
                    "refresh_expires_at": refresh_exp.isoformat()
                }
            )

            return {
                "access_token": access_token,
                "refresh_token": refresh_token,
                "token_type": "Bearer",
                "expires_in": self.access_token_expire_minutes * 60,
                "access_expires_at": access_payload["exp"].isoformat(),
                "refresh_expires_at": refresh_exp.isoformat()
            }

    def validate_token(self, token: str, token_type: str = "access") -> Dict[str, Any]:
        """
        Validate and decode a JWT token.

        Args:
            token: JWT token string to validate
            token_type: Expected token type ("access" or "refresh")

        Returns:
            Decoded token payload

        Raises:
            TokenValidationError: If token is invalid or expired
        """
        with tracer.start_as_current_span("auth.validate_token") as span:
            span.set_attributes({
                "auth.operation": "validate_token",
                "auth.token_type": token_type
            })

            try:
                payload = jwt.decode(
                    token,
                    self.public_key,
                    algorithms=[self.algorithm],
                    options={"verify_exp": True}
                )
            except jwt.ExpiredSignatureError:
                span.set_attribute("auth.validation_result", "expired")
                logger.warning("Token validation failed: token expired")
                raise TokenValidationError("Token has expired")
            except jwt.InvalidTokenError as e:
                span.set_attribute("auth.validation_result", "invalid")
                logger.warning(f"Token validation failed: {str(e)}")
                raise TokenValidationError(f"Invalid token: {str(e)}")

            if payload.get("type") != token_type:
                span.set_attribute("auth.validation_result", "wrong_type")
                raise TokenValidationError(f"Invalid token type. Expected {token_type}")

            span.set_attributes({
                "auth.validation_result": "success",
                "user.id": payload.get("sub")
            })
            return payload

    def refresh_access_token(self, refresh_token: str, user: User) -> Dict[str, Any]:
        """
        Issue a new access token from a valid refresh token.

        The caller loads ``user`` from the refresh token subject so that role
        changes made since login take effect.

        Raises:
            TokenValidationError: If the refresh token is invalid or belongs to another user
        """
        with tracer.start_as_current_span("auth.refresh_access_token") as span:
            span.set_attribute("auth.operation", "refresh_access_token")

            refresh_payload = self.validate_token(refresh_token, "refresh")
            if refresh_payload.get("sub") != user.id:
                raise TokenValidationError("Refresh token does not belong to this user")

            now = datetime.now(timezone.utc)
            access_payload = self._access_payload(user.id, user.email, user.name, user.role, now)

            try:
                access_token = jwt.encode(access_payload, self.private_key, algorithm=self.algorithm)
            except (jwt.PyJWTError, ValueError, TypeError) as e:
                span.set_attribute("auth.refresh_result", "error")
                logger.error(f"Token refresh failed: {str(e)}")
                raise AuthenticationError(f"Failed to refresh token: {str(e)}")

            span.set_attribute("auth.refresh_result", "success")
            logger.info(
                "Access token refreshed successfully",
                extra={"user_id": user.id, "new_expires_at": access_payload["exp"].isoformat()}
            )

            return {
                "access_token": access_token,
                "token_type": "Bearer",
                "expires_in": self.access_token_expire_minutes * 60,
                "expires_at": access_payload["exp"].isoformat()
            }

    def peek_subject(self, token: str) -> Optional[str]:
        """Read the ``sub`` claim of a token without verifying it."""
        try:
            return jwt.decode(token, options={"verify_signature": False}).get("sub")
        except jwt.InvalidTokenError:
            return None

    def extract_token_id(self, token: str) -> str:
        """
        Build the blocklist identifier of a token from its subject, issue time and type.

        Raises:
            TokenValidationError: If the token cannot be decoded
        """
        try:
            payload = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError as e:
            logger.error(f"Failed to extract token ID: {str(e)}")
            raise TokenValidationError(f"Invalid token format: {str(e)}")

        return f"{payload.get('sub')}:{payload.get('iat')}:{payload.get('type')}"

    def token_ttl_seconds(self, token: str) -> int:
        """Seconds until the token expires, at least 1."""
        try:
            payload = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError:
            return self.access_token_expire_minutes * 60

        exp = payload.get("exp")
        if not exp:
            return self.access_token_expire_minutes * 60
        remaining = int(exp - datetime.now(timezone.utc).timestamp())
        return max(remaining, 1)
