"""
Mock resolver — deterministic fake matches for local runs.

Activated with MOCK_RESOLVER=1. The outcome for a row is a pure function of
its supplier key and SKU, so re-running a job file gives the same mix of
confident / review / unresolved / error rows. Useful for UI development,
demo runs and verifying driver orchestration without the matching service.
"""
import hashlib
import logging
import random
import time

from skumatch.pipeline.base import (
    Resolver, ResolveInput, ResolutionResult,
    RESOLVED_CONFIDENT, RESOLVED_NEEDS_REVIEW, UNRESOLVED,
)

logger = logging.getLogger('pipeline.mock')

MOCK_DOMAINS = [
    'henryschein.com',
    'mckesson.com',
    'medline.com',
    'cardinalhealth.com',
    'owens-minor.com',
]


def _bucket(params: ResolveInput) -> int:
    key = f"{params.supplier_key}|{params.sku or params.ndc_item_code or params.product_name or ''}"
    return int(hashlib.sha1(key.encode('utf-8')).hexdigest(), 16) % 10


def _slug(params: ResolveInput) -> str:
    base = params.sku or params.ndc_item_code or params.product_name or 'item'
    return ''.join(c if c.isalnum() else '-' for c in base.lower()).strip('-') or 'item'


class MockResolver(Resolver):
    """
    Buckets 0-5 → resolved_confident, 6-7 → resolved_needs_review,
    8 → unresolved, 9 → TimeoutError.
    """
    name = 'mock'

    def __init__(self, delay=(0.05, 0.2)):
        self.delay = delay

    def resolve(self, params: ResolveInput) -> ResolutionResult:
        if self.delay:
            time.sleep(random.uniform(*self.delay))

        bucket = _bucket(params)
        domain = MOCK_DOMAINS[bucket % len(MOCK_DOMAINS)]
        slug = _slug(params)

        if bucket <= 5:
            return ResolutionResult(
                status=RESOLVED_CONFIDENT,
                resolved_url=f'https://www.{domain}/product/{slug}',
                confidence=round(0.80 + bucket * 0.03, 2),
                matched_by='mock:sku',
                signals=['sku_on_page', f'brand:{params.brand_name or "unknown"}'],
            )
        if bucket <= 7:
            return ResolutionResult(
                status=RESOLVED_NEEDS_REVIEW,
                candidates=[
                    {'url': f'https://www.{domain}/product/{slug}', 'score': 0.66, 'signals': ['title_match']},
                    {'url': f'https://www.{MOCK_DOMAINS[0]}/p/{slug}', 'score': 0.58, 'signals': ['partial_sku']},
                ],
            )
        if bucket == 8:
            return ResolutionResult(status=UNRESOLVED, candidates=[])

        logger.debug("Mock resolver simulating timeout for sku=%s", params.sku)
        raise TimeoutError(f"mock resolver timed out for sku {params.sku}")
