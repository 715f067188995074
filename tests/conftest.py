import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from override_pricing.audit.sink import CollectingErrorReporter, InMemoryAuditSink
from override_pricing.engine.models import OverrideRecord
from override_pricing.engine.resolver import Resolver
from override_pricing.services.override_registry import OverrideRegistry
from override_pricing.services.pricing_service import PricingService
from override_pricing.storage.override_store import InMemoryOverrideStore


def utc(year, month, day, hour=0):
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


class FixedClock:
    """Deterministic clock; tests move it forward explicitly."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def make_record(client_id="C1", **fields) -> OverrideRecord:
    """Override with sensible defaults: 10% off product P1 from 2025-01-01, no expiry."""
    if 'product_id' not in fields and 'category_name' not in fields:
        fields['product_id'] = 'P1'
    if 'discount_percent' not in fields and 'fixed_price' not in fields:
        fields['discount_percent'] = '10'
    fields.setdefault('valid_from', utc(2025, 1, 1))
    return OverrideRecord.build(client_id=client_id, **fields)


@pytest.fixture
def clock():
    return FixedClock(utc(2025, 1, 10))


@pytest.fixture
def store():
    return InMemoryOverrideStore()


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def error_reporter():
    return CollectingErrorReporter()


@pytest.fixture
def registry(store, audit_sink, clock):
    return OverrideRegistry(store, audit_sink, clock=clock)


@pytest.fixture
def resolver(registry, audit_sink, error_reporter, clock):
    return Resolver(registry, audit_sink, error_reporter=error_reporter, clock=clock)


@pytest.fixture
def service(registry, resolver):
    return PricingService(registry, resolver)
