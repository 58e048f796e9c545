"""
Redis-backed request throttling for the inventory API.

A fixed-window counter per (scope, client IP). When Redis is unreachable or
RATE_LIMIT_ENABLED is off, requests pass through untouched.
"""
import logging
from functools import wraps
from typing import Optional, Tuple

import redis
from django.conf import settings
from django.http import JsonResponse
from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)

try:
    redis_client = redis.Redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=2
    )
    redis_client.ping()
except (redis.ConnectionError, redis.TimeoutError) as e:
    logger.warning(f"Redis unavailable ({e}); API rate limiting disabled.")
    redis_client = None


def get_client_ip(request) -> str:
    """Client address, honouring the first X-Forwarded-For hop."""
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', 'unknown')


def _limiting_enabled() -> bool:
    return getattr(settings, 'RATE_LIMIT_ENABLED', True) and redis_client is not None


def _hit(scope: str, request, max_requests: int, window_seconds: int) -> Tuple[int, int]:
    """Count one request in the current window. Returns (count, ttl)."""
    key = f"clinic:rl:{scope}:{get_client_ip(request)}"
    count = redis_client.incr(key)
    if count == 1:
        redis_client.expire(key, window_seconds)
    return count, redis_client.ttl(key)


def _limit_exceeded(max_requests: int, window_seconds: int, ttl: int) -> Response:
    return Response(
        {
            'error': 'Rate limit exceeded',
            'detail': f'Maximum {max_requests} requests per {window_seconds} seconds allowed.',
            'retry_after': ttl
        },
        status=status.HTTP_429_TOO_MANY_REQUESTS,
        headers={
            'X-RateLimit-Limit': str(max_requests),
            'X-RateLimit-Remaining': '0',
            'X-RateLimit-Reset': str(ttl),
            'Retry-After': str(ttl)
        }
    )


def _annotate(response, max_requests: int, count: int, ttl: int):
    response['X-RateLimit-Limit'] = str(max_requests)
    response['X-RateLimit-Remaining'] = str(max(0, max_requests - count))
    response['X-RateLimit-Reset'] = str(ttl)
    return response


def rate_limit(max_requests: int = 30, window_seconds: int = 60, scope: Optional[str] = None):
    """
    Throttle a DRF view method.

    Usage:
        @rate_limit(30, 60)
        def get(self, request):
            ...
    """
    def decorator(view_func):
        key_scope = scope or view_func.__qualname__

        @wraps(view_func)
        def wrapper(self, request, *args, **kwargs):
            if not _limiting_enabled():
                return view_func(self, request, *args, **kwargs)
            try:
                count, ttl = _hit(key_scope, request, max_requests, window_seconds)
            except redis.RedisError as e:
                logger.error(f"Redis error while rate limiting {key_scope}: {e}")
                return view_func(self, request, *args, **kwargs)

            if count > max_requests:
                logger.warning(f"Rate limit hit on {key_scope} from {get_client_ip(request)}")
                return _limit_exceeded(max_requests, window_seconds, ttl)
            return _annotate(view_func(self, request, *args, **kwargs), max_requests, count, ttl)

        return wrapper
    return decorator


class RateLimitMixin:
    """
    Class-level throttling for views whose every method should be limited.

    Usage:
        class RestockView(RateLimitMixin, APIView):
            rate_limit_max_requests = 10
    """
    rate_limit_max_requests = 20
    rate_limit_window_seconds = 60

    def dispatch(self, request, *args, **kwargs):
        if not _limiting_enabled():
            return super().dispatch(request, *args, **kwargs)
        scope = self.__class__.__name__
        try:
            count, ttl = _hit(scope, request, self.rate_limit_max_requests, self.rate_limit_window_seconds)
        except redis.RedisError as e:
            logger.error(f"Redis error while rate limiting {scope}: {e}")
            return super().dispatch(request, *args, **kwargs)

        if count > self.rate_limit_max_requests:
            # dispatch() runs before DRF content negotiation, so answer with plain JSON
            limited = _limit_exceeded(self.rate_limit_max_requests, self.rate_limit_window_seconds, ttl)
            response = JsonResponse(limited.data, status=limited.status_code)
            for header, value in limited.headers.items():
                response[header] = value
            return response
        response = super().dispatch(request, *args, **kwargs)
        return _annotate(response, self.rate_limit_max_requests, count, ttl)
