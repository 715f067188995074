"""
Resolver - effective unit price for one line item.

Resolution order:
1. Fetch the client's active overrides for the product or its category
2. Drop overrides outside their validity window or below their minimum quantity
3. Product-specific overrides outrank category-wide ones
4. Within a scope, the most recently created override wins (then highest id)
5. Fixed price replaces the base price; otherwise the percentage is taken off
6. Never below zero
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

from ..audit.sink import AuditSink, ErrorReporter, LoggingErrorReporter, EVENT_PRICE_RESOLVED
from ..cancellation import CancellationToken, check_cancelled
from ..errors import AuditWriteError, InvalidQuantityError, ValidationError
from ..utils.logging import get_logger
from .models import (
    FixedPrice,
    OverrideRecord,
    PercentageDiscount,
    PriceResolution,
    REASON_EXPIRED,
    REASON_MIN_QUANTITY,
    REASON_NO_RULE,
    REASON_NOT_YET_VALID,
    ZERO,
    quantize_money,
    to_decimal,
    to_utc,
    utc_now,
)

log = get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

# When nothing applies, the most actionable reason is reported first
_REASON_PRECEDENCE = (REASON_MIN_QUANTITY, REASON_EXPIRED, REASON_NOT_YET_VALID, REASON_NO_RULE)


def check_quantity(quantity: Any) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantityError(f"Quantity must be a positive integer, got {quantity!r}")
    if quantity <= 0:
        raise InvalidQuantityError(f"Quantity must be a positive integer, got {quantity}")
    return quantity


def check_base_price(base_price: Any) -> Decimal:
    price = to_decimal(base_price, "base_price")
    if price is None:
        raise ValidationError("base_price is required")
    if price < 0:
        raise ValidationError("base_price must be non-negative")
    return price


def rejection_reason(record: OverrideRecord, quantity: int, as_of: datetime) -> Optional[str]:
    """Why an override does not apply to this line, or None when it does."""
    if not record.is_active or record.pricing_mode is None:
        return REASON_NO_RULE
    if record.valid_from is not None and as_of < record.valid_from:
        return REASON_NOT_YET_VALID
    if record.valid_until is not None and as_of >= record.valid_until:
        return REASON_EXPIRED
    if quantity < record.minimum_quantity:
        return REASON_MIN_QUANTITY
    return None


def _scope_of(record: OverrideRecord, product_id: Optional[str], category_name: Optional[str]) -> Optional[str]:
    # A legacy record carrying both fields counts as product-specific when the product matches
    if record.target.matches_product(product_id):
        return "product"
    if record.target.matches_category(category_name):
        return "category"
    return None


def _tie_break_key(record: OverrideRecord) -> tuple:
    return (record.created_at or _EPOCH, record.id)


def _explain(rejected: dict[str, list[str]]) -> str:
    for scope in ("product", "category"):
        reasons = rejected[scope]
        for reason in _REASON_PRECEDENCE:
            if reason in reasons:
                return reason
    return REASON_NO_RULE


def resolve_price(
    candidates: list[OverrideRecord],
    product_id: Optional[str],
    category_name: Optional[str],
    base_price: Decimal,
    quantity: int,
    as_of: datetime,
) -> PriceResolution:
    """
    Pure price computation over a snapshot of candidate overrides.

    Args:
        candidates: Overrides of the client (any state; inapplicable ones are filtered)
        product_id: Product being priced
        category_name: Category of that product
        base_price: Catalog unit price before overrides
        quantity: Ordered quantity (already validated)
        as_of: Instant the validity windows are evaluated against

    Returns:
        PriceResolution with the applied override (if any) and a trace
    """
    resolution = PriceResolution(
        final_price=base_price,
        base_price=base_price,
        quantity=quantity,
        as_of=as_of,
    )
    resolution.add_trace("Base Price", "Catalog unit price", str(base_price))
    resolution.add_trace("Candidates", "Active overrides for product or category", str(len(candidates)))

    applicable: dict[str, list[OverrideRecord]] = {"product": [], "category": []}
    rejected: dict[str, list[str]] = {"product": [], "category": []}

    for record in sorted(candidates, key=lambda r: r.id):
        scope = _scope_of(record, product_id, category_name)
        if scope is None:
            continue
        reason = rejection_reason(record, quantity, as_of)
        if reason:
            rejected[scope].append(reason)
            resolution.add_trace("Rejected", f"{scope} override {record.id}", reason)
        else:
            applicable[scope].append(record)

    scope = "product" if applicable["product"] else "category"
    pool = applicable[scope]

    if not pool:
        resolution.reason = _explain(rejected)
        resolution.add_trace("No Override", resolution.reason, str(resolution.final_price))
        return resolution

    chosen = max(pool, key=_tie_break_key)
    if len(pool) > 1:
        resolution.add_trace(
            "Tie-Break", f"{len(pool)} {scope} overrides apply, newest wins", chosen.id
        )

    mode = chosen.pricing_mode
    if isinstance(mode, FixedPrice):
        final_price = mode.amount
        resolution.add_trace("Override Applied", f"Fixed price from {scope} override {chosen.id}", str(final_price))
    elif isinstance(mode, PercentageDiscount):
        final_price = quantize_money(base_price * (1 - mode.percent / 100))
        resolution.add_trace(
            "Override Applied",
            f"{mode.percent}% off from {scope} override {chosen.id}",
            f"{final_price:.2f}",
        )

    if final_price < 0:
        resolution.add_trace("Clamp", "Negative price clamped to zero", "0.00")
        final_price = quantize_money(ZERO)

    # Base and fixed prices pass through unrounded
    resolution.final_price = final_price
    resolution.discount_amount = base_price - final_price
    resolution.discount_applied = True
    resolution.applied_rule_id = chosen.id
    resolution.applied_scope = scope
    resolution.pricing_mode = mode.kind
    return resolution


class Resolver:
    """
    Resolves prices against the registry and reports each resolution.

    The audit write is best-effort: a rejected write goes to the error
    reporter and the price is still returned.
    """

    def __init__(
        self,
        registry,
        audit_sink: AuditSink,
        error_reporter: Optional[ErrorReporter] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.registry = registry
        self.audit_sink = audit_sink
        self.error_reporter = error_reporter or LoggingErrorReporter()
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def resolve(
        self,
        client_id: str,
        product_id: Optional[str],
        category_name: Optional[str],
        base_price: Any,
        quantity: int,
        as_of: Optional[datetime] = None,
        actor_id: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> PriceResolution:
        """Resolve the unit price a client pays for a product at `as_of` (default: now)."""
        quantity = check_quantity(quantity)
        base = check_base_price(base_price)
        instant = to_utc(as_of) or self._clock()

        check_cancelled(cancel, "resolve")
        candidates = self.registry.list_candidates_for(client_id, product_id, category_name)
        resolution = resolve_price(candidates, product_id, category_name, base, quantity, instant)

        check_cancelled(cancel, "resolve")
        log.debug(
            "Resolved client=%s product=%s qty=%s: %s -> %s (%s)",
            client_id, product_id, quantity, base, resolution.final_price,
            resolution.applied_rule_id or resolution.reason,
        )
        self._report(resolution, client_id, product_id, category_name, actor_id)
        return resolution

    def _report(self, resolution: PriceResolution, client_id, product_id, category_name, actor_id):
        payload = {
            'client_id': client_id,
            'product_id': product_id,
            'category_name': category_name,
            'override_id': resolution.applied_rule_id,
            'quantity': resolution.quantity,
            'base_price': str(resolution.base_price),
            'final_price': str(resolution.final_price),
            'discount_amount': str(resolution.discount_amount),
            'reason': resolution.reason,
            'as_of': resolution.as_of.isoformat(),
        }
        try:
            self.audit_sink.record(EVENT_PRICE_RESOLVED, actor_id, payload, self._clock())
        except AuditWriteError as e:
            self.error_reporter.report(e, payload)
