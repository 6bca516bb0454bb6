"""
Tests for sanitization, validation and rate limiting
"""
from unittest.mock import AsyncMock

import pytest

from core.security import (
    RateLimiter,
    sanitize_for_logging,
    sanitize_text_input,
    validate_email,
    validate_webhook_url,
)

ALLOWED = ["n8n.cloud", "quantumtaskai.app.n8n.cloud", "webhook.site"]


class TestSanitizeForLogging:

    def test_redacts_sensitive_keys(self):
        data = {
            "user_id": "u1",
            "password": "hunter2",
            "stripe_secret_key": "sk_live_x",
            "nested": {"accessToken": "abc", "amount": 10},
            "items": [{"api_key": "k"}],
        }
        assert sanitize_for_logging(data) == {
            "user_id": "u1",
            "password": "[REDACTED]",
            "stripe_secret_key": "[REDACTED]",
            "nested": {"accessToken": "[REDACTED]", "amount": 10},
            "items": [{"api_key": "[REDACTED]"}],
        }

    def test_leaves_scalars_alone(self):
        assert sanitize_for_logging("text") == "text"
        assert sanitize_for_logging(5) == 5


class TestInputValidation:

    def test_sanitize_text_input(self):
        assert sanitize_text_input("<script>alert(1)</script>Hello <b>World</b>") == "Hello World"
        assert sanitize_text_input("Tom & Jerry") == "Tom &amp; Jerry"
        assert sanitize_text_input(None) == ""

    def test_validate_email(self):
        assert validate_email("  User@Example.COM ") == (True, "user@example.com", None)
        assert validate_email("not-an-email")[0] is False
        assert validate_email("")[2] == "Email is required"


class TestWebhookUrl:

    def test_allowed_domain(self):
        assert validate_webhook_url("https://quantumtaskai.app.n8n.cloud/webhook/x", ALLOWED) == (True, None)
        assert validate_webhook_url("https://team.n8n.cloud/webhook/x", ALLOWED) == (True, None)

    def test_rejects_other_domains(self):
        is_valid, error = validate_webhook_url("https://evil.example.com/hook", ALLOWED)
        assert not is_valid
        assert "evil.example.com" in error

    def test_rejects_lookalike_domain(self):
        assert validate_webhook_url("https://notn8n.cloud/hook", ALLOWED)[0] is False

    def test_production_rules(self):
        assert validate_webhook_url("http://webhook.site/x", ALLOWED, production=True)[0] is False
        assert validate_webhook_url("http://localhost:5678/webhook", ALLOWED)[0] is True
        assert validate_webhook_url("https://localhost/webhook", ALLOWED, production=True)[0] is False

    def test_invalid_url(self):
        assert validate_webhook_url("ftp://webhook.site", ALLOWED) == (False, "Invalid URL format")
        assert validate_webhook_url(None, ALLOWED) == (False, "URL is required")


class TestRateLimiter:

    @pytest.mark.asyncio
    async def test_memory_limit(self):
        limiter = RateLimiter(max_attempts=2, window_seconds=60)

        assert (await limiter.check("1.2.3.4"))[:2] == (True, 1)
        assert (await limiter.check("1.2.3.4"))[:2] == (True, 0)
        assert (await limiter.check("1.2.3.4"))[:2] == (False, 0)
        # Other clients are counted separately
        assert (await limiter.check("5.6.7.8"))[0] is True

    @pytest.mark.asyncio
    async def test_memory_reset(self):
        limiter = RateLimiter(max_attempts=1, window_seconds=60)
        await limiter.check("ip")
        assert (await limiter.check("ip"))[0] is False

        await limiter.reset("ip")
        assert (await limiter.check("ip"))[0] is True

    @pytest.mark.asyncio
    async def test_redis_backend(self):
        redis = AsyncMock()
        redis.incr.side_effect = [1, 2, 3]
        redis.ttl.return_value = 42
        limiter = RateLimiter(max_attempts=2, window_seconds=60, redis=redis, prefix="rl")

        results = [await limiter.check("ip") for _ in range(3)]

        assert [r[0] for r in results] == [True, True, False]
        assert [r[1] for r in results] == [1, 0, 0]
        redis.incr.assert_called_with("rl:ip")
        redis.expire.assert_called_once_with("rl:ip", 60)

        await limiter.reset("ip")
        redis.delete.assert_called_once_with("rl:ip")
