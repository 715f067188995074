"""
Pricing Service - the in-process call surface for order and quote builders.

Wires store, audit sink, registry and resolver together. `admin` is the
registry, used by administrative tooling to create, update, deactivate and
delete overrides.
"""
from datetime import datetime
from typing import Optional

from ..audit.sink import AuditSink, ErrorReporter, SQLiteAuditSink
from ..cancellation import CancellationToken, check_cancelled
from ..config.settings import Settings, get_settings
from ..engine.models import PriceResolution, QuoteLine, QuoteResult, ZERO, quantize_money, to_utc
from ..engine.resolver import Resolver
from ..storage.override_store import SQLiteOverrideStore
from .override_registry import OverrideRegistry, ReferenceChecker


class PricingService:
    """Resolves line-item and quote prices from client overrides."""

    def __init__(self, registry: OverrideRegistry, resolver: Resolver):
        self.registry = registry
        self.resolver = resolver

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        audit_sink: Optional[AuditSink] = None,
        error_reporter: Optional[ErrorReporter] = None,
        reference_checker: Optional[ReferenceChecker] = None,
    ) -> 'PricingService':
        """Build a service backed by the SQLite files named in settings."""
        settings = settings or get_settings()
        store = SQLiteOverrideStore(settings.db_path, busy_timeout=settings.busy_timeout)
        sink = audit_sink or SQLiteAuditSink(settings.audit_db_path, busy_timeout=settings.busy_timeout)
        registry = OverrideRegistry(
            store, sink,
            reference_checker=reference_checker,
            expiry_window_days=settings.expiry_window_days,
        )
        return cls(registry, Resolver(registry, sink, error_reporter=error_reporter))

    @property
    def admin(self) -> OverrideRegistry:
        return self.registry

    def resolve(
        self,
        client_id: str,
        product_id: Optional[str],
        category_name: Optional[str],
        base_price,
        quantity: int,
        as_of: Optional[datetime] = None,
        actor_id: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> PriceResolution:
        return self.resolver.resolve(
            client_id, product_id, category_name, base_price, quantity,
            as_of=as_of, actor_id=actor_id, cancel=cancel,
        )

    def resolve_quote(
        self,
        client_id: str,
        lines: list[QuoteLine],
        as_of: Optional[datetime] = None,
        actor_id: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> QuoteResult:
        """
        Resolve every line of a quote at one instant.

        Returns:
            QuoteResult with per-line resolutions, the quote total and the
            total amount saved through overrides
        """
        instant = to_utc(as_of) or self.resolver.now()
        result = QuoteResult(client_id=client_id, lines=[])
        total = ZERO
        saved = ZERO

        for line in lines:
            check_cancelled(cancel, "quote")
            resolution = self.resolve(
                client_id, line.product_id, line.category_name, line.base_price, line.quantity,
                as_of=instant, actor_id=actor_id, cancel=cancel,
            )
            result.lines.append(resolution)
            total += resolution.line_total
            saved += resolution.discount_amount * resolution.quantity

        result.total = quantize_money(total)
        result.total_discount_amount = quantize_money(saved)
        return result
