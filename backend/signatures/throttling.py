"""
Failed attempt throttling for public endpoints.

Public lookups by request id, signature id or file id answer unknown ids
with 404. Each such failure is counted per client address and scope; once
the budget of a scope is used up further calls are rejected with 429 until
the window has passed.
"""

import logging

from django.conf import settings
from django.core.cache import cache as default_cache
from rest_framework.throttling import BaseThrottle

logger = logging.getLogger(__name__)


class FailedAttemptThrottle(BaseThrottle):
    cache = default_cache
    cache_format = 'esig_failed_%(scope)s_%(ident)s'

    def __init__(self, scope='default'):
        self.scope = scope
        self.limit = getattr(settings, 'ESIG_FAILED_ATTEMPTS_LIMIT', 10)
        self.window = getattr(settings, 'ESIG_FAILED_ATTEMPTS_WINDOW', 600)

    def get_cache_key(self, request):
        return self.cache_format % {
            'scope': self.scope,
            'ident': self.get_ident(request),
        }

    def get_failures(self, request):
        return self.cache.get(self.get_cache_key(request), 0)

    def allow_request(self, request, view):
        return self.get_failures(request) < self.limit

    def register_failure(self, request):
        key = self.get_cache_key(request)
        if self.cache.add(key, 1, self.window):
            failures = 1
        else:
            try:
                failures = self.cache.incr(key)
            except ValueError:
                # Expired between add and incr
                self.cache.set(key, 1, self.window)
                failures = 1
        logger.warning(f"Failed attempt {failures}/{self.limit} for scope '{self.scope}' from {self.get_ident(request)}")
        return failures

    def wait(self):
        return self.window
