"""
Rate limiting and input validation for API protection.
"""
import time
from collections import defaultdict
from typing import Dict, Any, Optional
from fastapi import Request
from core.config import settings
from core.exceptions import RateLimitException, ValidationException
from core.logging import get_logger
from core.middleware import get_client_ip

logger = get_logger("rate_limiting")


class RateLimiter:
    """In-memory rate limiter with different policies."""

    def __init__(self):
        # Store: {key: {"count": int, "window_start": float, "blocked_until": float}}
        self.storage: Dict[str, Dict[str, Any]] = defaultdict(lambda: {
            "count": 0,
            "window_start": time.time(),
            "blocked_until": 0
        })

        # Rate limiting policies
        self.policies = {
            "default": {"requests": 100, "window": 900},        # 100 requests per 15 minutes
            "auth": {"requests": 20, "window": 900},            # 20 auth requests per 15 minutes
            "ai_generation": {"requests": 30, "window": 900},   # 30 AI requests per 15 minutes
            "trial": {"requests": 5, "window": 3600},           # 5 trial starts per hour
            "admin": {"requests": 1000, "window": 60},          # Higher limit for admins
        }

    def _get_client_key(self, request: Request, user_id: Optional[int] = None) -> str:
        """Generate a unique key for the client."""
        if user_id:
            return f"user_{user_id}"
        return f"ip_{get_client_ip(request)}"

    def is_allowed(
        self,
        request: Request,
        policy_name: str = "default",
        user_id: Optional[int] = None,
        user_role: Optional[str] = None
    ) -> tuple[bool, Dict[str, Any]]:
        """Check if request is allowed under rate limiting policy."""

        # Admin users get higher limits
        if user_role == "admin" and policy_name != "admin":
            policy_name = "admin"

        if policy_name not in self.policies:
            policy_name = "default"

        policy = self.policies[policy_name]
        rate_key = f"{policy_name}_{self._get_client_key(request, user_id)}"

        current_time = time.time()
        client_data = self.storage[rate_key]

        # Check if client is currently blocked
        if client_data["blocked_until"] > current_time:
            return False, {
                "error": "Rate limit exceeded",
                "blocked_until": client_data["blocked_until"],
                "retry_after": int(client_data["blocked_until"] - current_time)
            }

        # Reset window if expired
        if current_time - client_data["window_start"] >= policy["window"]:
            client_data["count"] = 0
            client_data["window_start"] = current_time
            client_data["blocked_until"] = 0

        if client_data["count"] >= policy["requests"]:
            # Block for the remaining window time
            window_end = client_data["window_start"] + policy["window"]
            client_data["blocked_until"] = window_end

            return False, {
                "error": "Rate limit exceeded",
                "requests_per_window": policy["requests"],
                "window_seconds": policy["window"],
                "retry_after": int(window_end - current_time)
            }

        client_data["count"] += 1

        return True, {
            "requests_remaining": policy["requests"] - client_data["count"],
            "window_reset": client_data["window_start"] + policy["window"]
        }

    def cleanup_expired(self):
        """Clean up expired entries to prevent memory bloat."""
        current_time = time.time()
        expired_keys = [
            key for key, data in self.storage.items()
            if current_time - data["window_start"] > 3600 and data["blocked_until"] <= current_time
        ]
        for key in expired_keys:
            del self.storage[key]
        return len(expired_keys)


# Global rate limiter instance
rate_limiter = RateLimiter()


class SecurityValidator:
    """Additional validation for free-text input forwarded to the AI."""

    DANGEROUS_PATTERNS = [
        '<script', '</script>', 'javascript:', 'vbscript:',
        'onload=', 'onerror=', 'onclick=', 'eval(',
        'document.cookie', 'document.write'
    ]

    @classmethod
    def validate_user_input(cls, text: str, max_length: int = 5000) -> tuple[bool, str]:
        """Validate user input for potential security issues."""
        if not text or not text.strip():
            return False, "Empty input not allowed"

        text_lower = text.lower()
        for pattern in cls.DANGEROUS_PATTERNS:
            if pattern in text_lower:
                logger.warning("Potentially dangerous pattern detected", pattern=pattern)
                return False, "Input contains potentially dangerous content"

        if len(text) > max_length:
            return False, "Input text too long"

        return True, "Valid"


security_validator = SecurityValidator()


def check_rate_limit(
    request: Request,
    policy: str = "default",
    user_id: Optional[int] = None,
    user_role: Optional[str] = None
) -> Dict[str, Any]:
    """Raise RateLimitException when the policy's window is exhausted."""
    if not settings.enable_rate_limiting:
        return {}

    allowed, info = rate_limiter.is_allowed(request, policy, user_id, user_role)
    if not allowed:
        logger.warning("Rate limit exceeded", policy=policy, client=get_client_ip(request))
        raise RateLimitException(
            detail=info.get("error", "Rate limit exceeded"),
            retry_after=info.get("retry_after", 60)
        )
    return info


def rate_limit(policy: str):
    """Build a route dependency enforcing ``policy`` per client IP."""
    async def dependency(request: Request):
        return check_rate_limit(request, policy)
    return dependency


def validate_text_input(text: str, max_length: int = 5000) -> str:
    valid, message = security_validator.validate_user_input(text, max_length)
    if not valid:
        raise ValidationException(message)
    return text
