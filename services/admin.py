"""
Service for admin authentication
Single admin whose credentials come from the environment
"""
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import jwt

from settings import Settings


class AdminService:
    """Service for admin credentials and tokens"""

    @staticmethod
    def verify_credentials(username: str, password: str, settings: Settings) -> bool:
        """
        Compare login credentials with ADMIN_USERNAME / ADMIN_PASSWORD

        Returns:
            False when admin access is not configured
        """
        if not settings.admin.is_configured:
            return False

        expected_username = settings.admin.username
        expected_password = settings.admin.password.get_secret_value()

        username_ok = secrets.compare_digest(username.encode(), expected_username.encode())
        password_ok = secrets.compare_digest(password.encode(), expected_password.encode())
        return username_ok and password_ok

    @staticmethod
    def create_token(username: str, settings: Settings) -> str:
        """Issue an HS256 admin token signed with the application secret"""
        now = datetime.now(timezone.utc)
        payload = {
            "admin": True,
            "username": username,
            "exp": now + timedelta(hours=settings.admin.token_ttl_hours),
            "iat": now,
        }
        return jwt.encode(
            payload,
            settings.secret.get_secret_value(),
            algorithm="HS256"
        )

    @staticmethod
    def decode_token(token: str, settings: Settings) -> Optional[Dict[str, Any]]:
        """
        Validate an admin token

        Returns:
            Admin info, or None for expired, invalid or non-admin tokens
        """
        try:
            payload = jwt.decode(
                token,
                settings.secret.get_secret_value(),
                algorithms=["HS256"]
            )
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None

        if payload.get("admin") is True:
            return {"admin": True, "username": payload.get("username")}
        return None
