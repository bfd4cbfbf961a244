"""
HTTP client for the external SKU → URL resolver service.

All calls go through the 'resolver' circuit breaker. Transport failures,
timeouts and non-2xx answers are raised as ResolverError / ResolverTimeout;
a 2xx answer that does not decode to a valid result raises
InvalidResolutionError (which does not trip the breaker).
"""
import logging

import requests

from skumatch.config import RESOLVER_URL, RESOLVER_API_KEY, RESOLVER_TIMEOUT
from skumatch.errors import InvalidResolutionError, ResolverError, ResolverTimeout
from skumatch.pipeline.base import Resolver, ResolveInput, ResolutionResult
from skumatch.services.circuit_breaker import get_breaker

logger = logging.getLogger('services.resolver_client')

RESOLVE_PATH = '/v1/match/resolve'


class HttpResolver(Resolver):
    """Resolver backed by the matching service's REST API."""
    name = 'http'

    def __init__(self, base_url=None, api_key=None, timeout=None, session=None):
        self.base_url = (base_url or RESOLVER_URL or '').rstrip('/')
        self.api_key = api_key or RESOLVER_API_KEY
        self.timeout = timeout or RESOLVER_TIMEOUT
        self.session = session or requests.Session()

    def resolve(self, params: ResolveInput) -> ResolutionResult:
        if not self.base_url:
            raise ResolverError("RESOLVER_URL is not configured")
        breaker = get_breaker('resolver', ignore=(InvalidResolutionError,))
        return breaker.call(self._request, params)

    def _request(self, params: ResolveInput) -> ResolutionResult:
        headers = {'Accept': 'application/json'}
        if self.api_key:
            headers['Authorization'] = f'Bearer {self.api_key}'

        try:
            response = self.session.post(
                f'{self.base_url}{RESOLVE_PATH}',
                json=params.to_payload(),
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise ResolverTimeout(f"resolver timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise ResolverError(f"resolver request failed: {e}") from e

        if response.status_code >= 400:
            raise ResolverError(f"resolver HTTP {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as e:
            raise InvalidResolutionError("resolver response is not JSON") from e

        # The service wraps results as {"ok": true, "result": {...}}; bare results are accepted too.
        if isinstance(data, dict) and isinstance(data.get('result'), dict):
            data = data['result']
        return ResolutionResult.from_dict(data)
