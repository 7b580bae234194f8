"""
Authentication middleware for protected routes.

Validates access tokens and attaches the token claims to requests.
"""

import logging
from typing import Optional

from fastapi import Request

from common.utils.exceptions import ForbiddenException, UnauthorizedException
from marketplace.services.auth.token_manager import TokenManager

logger = logging.getLogger(__name__)


class AuthMiddleware:
    """
    Middleware that validates the bearer token and attaches the user to the request.
    """

    def __init__(self, token_manager: TokenManager):
        """
        Initialize AuthMiddleware.

        Args:
            token_manager: For access token verification
        """
        self._token_manager = token_manager

    async def require_auth(self, request: Request) -> dict:
        """
        Validate request is authenticated.

        Args:
            request: HTTP request object

        Returns:
            Access token claims (userId, email, role)

        Raises:
            UnauthorizedException: No bearer token
            TokenExpiredError: Token signature valid but expired
            TokenInvalidError: Token malformed, tampered, or of the wrong type

        Side Effects:
            - Attaches claims to request.state.user
        """
        token = self._extract_token(request)

        if not token:
            raise UnauthorizedException(
                message="Authentication required",
                code="AUTH_REQUIRED"
            )

        claims = self._token_manager.verify_access_token(token)
        request.state.user = claims
        return claims

    async def require_role(self, request: Request, *roles: str) -> dict:
        """
        Validate request is authenticated with one of the given roles.

        Raises:
            ForbiddenException: Authenticated, but role not allowed
        """
        claims = await self.require_auth(request)

        if claims.get("role") not in roles:
            logger.info(f"User {claims.get('userId')} denied, role {claims.get('role')} not in {roles}")
            raise ForbiddenException(
                message="Insufficient permissions",
                code="FORBIDDEN"
            )

        return claims

    def _extract_token(self, request: Request) -> Optional[str]:
        """
        Extract bearer token from Authorization header.

        Expected format: "Authorization: Bearer <token>"
        """
        auth_header = request.headers.get("Authorization")

        if not auth_header:
            return None

        parts = auth_header.split()

        if len(parts) != 2:
            return None

        scheme, token = parts

        if scheme.lower() != "bearer":
            return None

        return token
