"""
Input sanitization, log redaction and rate limiting
"""
import html
import re
import time
from typing import Any, Dict, Iterable, Optional, Tuple
from urllib.parse import urlparse

from redis.asyncio import Redis


SENSITIVE_KEYS = ("password", "token", "key", "secret", "credential")

EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)
SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
TAG_RE = re.compile(r"<[^>]*>")


def sanitize_for_logging(obj: Any) -> Any:
    """
    Redact values whose key looks sensitive

    Args:
        obj: Any JSON-like structure

    Returns:
        Copy of obj with sensitive values replaced by "[REDACTED]"
    """
    if isinstance(obj, dict):
        sanitized = {}
        for key, value in obj.items():
            if any(marker in str(key).lower() for marker in SENSITIVE_KEYS):
                sanitized[key] = "[REDACTED]"
            else:
                sanitized[key] = sanitize_for_logging(value)
        return sanitized
    if isinstance(obj, (list, tuple)):
        return [sanitize_for_logging(item) for item in obj]
    return obj


def sanitize_text_input(value: Any) -> str:
    """Strip HTML and escape the remaining special characters"""
    if not isinstance(value, str):
        return ""
    value = SCRIPT_RE.sub("", value)
    value = TAG_RE.sub("", value)
    return html.escape(value, quote=True).strip()


def validate_email(email: Any) -> Tuple[bool, Optional[str], Optional[str]]:
    """
    Normalize and validate an email address

    Returns:
        (is_valid, normalized_email, error)
    """
    if not email or not isinstance(email, str):
        return False, None, "Email is required"

    normalized = email.strip().lower()
    if not EMAIL_RE.match(normalized):
        return False, None, "Please enter a valid email address"
    if len(normalized) > 254:
        return False, None, "Email address is too long"
    return True, normalized, None


def validate_webhook_url(
    url: Any,
    allowed_domains: Iterable[str],
    production: bool = False
) -> Tuple[bool, Optional[str]]:
    """
    Check that a workflow URL points at an allowed host

    Returns:
        (is_valid, error)
    """
    if not url or not isinstance(url, str):
        return False, "URL is required"

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return False, "Invalid URL format"

    if production and parsed.scheme != "https":
        return False, "Only HTTPS URLs are allowed in production"

    hostname = parsed.hostname
    if hostname in ("localhost", "127.0.0.1"):
        if production:
            return False, "Localhost URLs are not allowed in production"
        return True, None

    for domain in allowed_domains:
        if hostname == domain or hostname.endswith("." + domain):
            return True, None

    return False, f"Domain '{hostname}' is not in the allowed list"


class RateLimiter:
    """
    Fixed-window rate limiter

    Counts live in process memory unless a Redis client is given, in which case
    all workers share them.
    """

    def __init__(self, max_attempts: int, window_seconds: int, redis: Optional[Redis] = None, prefix: str = "ratelimit"):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.redis = redis
        self.prefix = prefix
        self._attempts: Dict[str, Tuple[int, float]] = {}

    async def check(self, identifier: str) -> Tuple[bool, int, float]:
        """
        Register an attempt

        Returns:
            (allowed, remaining, reset_at) with reset_at as a unix timestamp
        """
        if self.redis is not None:
            return await self._check_redis(identifier)
        return self._check_memory(identifier)

    def _check_memory(self, identifier: str) -> Tuple[bool, int, float]:
        now = time.time()
        count, reset_at = self._attempts.get(identifier, (0, 0.0))

        if now > reset_at:
            reset_at = now + self.window_seconds
            self._attempts[identifier] = (1, reset_at)
            return True, self.max_attempts - 1, reset_at

        if count >= self.max_attempts:
            return False, 0, reset_at

        count += 1
        self._attempts[identifier] = (count, reset_at)
        return True, self.max_attempts - count, reset_at

    async def _check_redis(self, identifier: str) -> Tuple[bool, int, float]:
        key = f"{self.prefix}:{identifier}"
        count = await self.redis.incr(key)
        if count == 1:
            await self.redis.expire(key, self.window_seconds)
        ttl = await self.redis.ttl(key)
        reset_at = time.time() + max(ttl, 0)

        if count > self.max_attempts:
            return False, 0, reset_at
        return True, self.max_attempts - count, reset_at

    async def reset(self, identifier: str) -> None:
        if self.redis is not None:
            await self.redis.delete(f"{self.prefix}:{identifier}")
        else:
            self._attempts.pop(identifier, None)
