"""
Data models for override pricing.

Uses dataclasses for structured, type-safe data representation. Money is
Decimal, instants are timezone-aware UTC datetimes.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, ClassVar, Optional, Union
import uuid

from ..errors import ValidationError


CENT = Decimal('0.01')
ZERO = Decimal('0')

# Reasons reported when no override was applied
REASON_NO_RULE = "no rule applied"
REASON_MIN_QUANTITY = "minimum quantity not met"
REASON_EXPIRED = "expired"
REASON_NOT_YET_VALID = "not yet valid"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: Union[datetime, str, None]) -> Optional[datetime]:
    """Coerce an ISO string or datetime to an aware UTC datetime (naive = UTC)."""
    if value is None or value == '':
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip())
        except ValueError:
            raise ValidationError(f"Invalid ISO-8601 instant: {value!r}")
    if not isinstance(value, datetime):
        raise ValidationError(f"Expected an instant, got {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_decimal(value: Any, field_name: str = "value") -> Optional[Decimal]:
    """Coerce a number or numeric string to Decimal (None/blank stays None)."""
    if value is None or (isinstance(value, str) and value.strip() == ''):
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field_name} must be a number, got {value!r}")
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite")
    return result


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _str_or_none(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


@dataclass(frozen=True)
class Target:
    """The scope an override covers: one product or a whole category."""
    product_id: Optional[str] = None
    category_name: Optional[str] = None

    @property
    def kind(self) -> str:
        if self.product_id and self.category_name:
            return "ambiguous"
        if self.product_id:
            return "product"
        if self.category_name:
            return "category"
        return "none"

    @property
    def key(self) -> tuple[Optional[str], Optional[str]]:
        """Grouping key for conflict detection."""
        return (self.product_id or None, self.category_name or None)

    def matches_product(self, product_id: Optional[str]) -> bool:
        return bool(product_id) and self.product_id == product_id

    def matches_category(self, category_name: Optional[str]) -> bool:
        return bool(category_name) and self.category_name == category_name

    def describe(self) -> str:
        if self.kind == "product":
            return f"product {self.product_id}"
        if self.kind == "category":
            return f"category {self.category_name}"
        if self.kind == "ambiguous":
            return f"product {self.product_id} / category {self.category_name}"
        return "no target"


@dataclass(frozen=True)
class FixedPrice:
    """Flat unit price, replacing the catalog price."""
    amount: Decimal
    kind: ClassVar[str] = "fixed_price"


@dataclass(frozen=True)
class PercentageDiscount:
    """Percentage taken off the catalog price."""
    percent: Decimal
    kind: ClassVar[str] = "percentage"


PricingMode = Union[FixedPrice, PercentageDiscount]


def parse_pricing_mode(discount_percent: Any, fixed_price: Any) -> PricingMode:
    """
    Build the pricing mode of an override at the write boundary.

    Exactly one of the two fields must be supplied; records carrying both or
    neither are rejected instead of being silently prioritised later.
    """
    percent = to_decimal(discount_percent, "discount_percent")
    amount = to_decimal(fixed_price, "fixed_price")

    if percent is None and amount is None:
        raise ValidationError("Either discount_percent or fixed_price is required")
    if percent is not None and amount is not None:
        raise ValidationError("discount_percent and fixed_price are mutually exclusive")

    if amount is not None:
        if amount < 0:
            raise ValidationError("fixed_price must be non-negative")
        return FixedPrice(amount)

    if percent < 0 or percent > 100:
        raise ValidationError("discount_percent must be between 0 and 100")
    return PercentageDiscount(percent)


@dataclass(frozen=True)
class OverrideRecord:
    """A client-specific price override scoped to a product or a category."""
    id: str
    client_id: str
    target: Target
    discount_percent: Optional[Decimal] = None
    fixed_price: Optional[Decimal] = None
    minimum_quantity: int = 1
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None  # None = no expiry
    is_active: bool = True
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def build(
        cls,
        client_id: str,
        product_id: Optional[str] = None,
        category_name: Optional[str] = None,
        discount_percent: Any = None,
        fixed_price: Any = None,
        minimum_quantity: Any = 1,
        valid_from: Union[datetime, str, None] = None,
        valid_until: Union[datetime, str, None] = None,
        is_active: bool = True,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
        id: Optional[str] = None,
        created_at: Union[datetime, str, None] = None,
        updated_at: Union[datetime, str, None] = None,
    ) -> 'OverrideRecord':
        """Create a record from loosely typed input, coercing numbers and instants."""
        if minimum_quantity is None or minimum_quantity == '':
            minimum_quantity = 1
        try:
            quantity = int(minimum_quantity)
        except (TypeError, ValueError):
            raise ValidationError(f"minimum_quantity must be an integer, got {minimum_quantity!r}")
        if isinstance(minimum_quantity, (float, Decimal)) and quantity != minimum_quantity:
            raise ValidationError(f"minimum_quantity must be an integer, got {minimum_quantity!r}")

        return cls(
            id=id or str(uuid.uuid4()),
            client_id=client_id,
            target=Target(product_id=product_id or None, category_name=category_name or None),
            discount_percent=to_decimal(discount_percent, "discount_percent"),
            fixed_price=to_decimal(fixed_price, "fixed_price"),
            minimum_quantity=quantity,
            valid_from=to_utc(valid_from),
            valid_until=to_utc(valid_until),
            is_active=bool(is_active),
            notes=notes or None,
            created_by=created_by or None,
            created_at=to_utc(created_at),
            updated_at=to_utc(updated_at),
        )

    @property
    def product_id(self) -> Optional[str]:
        return self.target.product_id

    @property
    def category_name(self) -> Optional[str]:
        return self.target.category_name

    @property
    def pricing_mode(self) -> Optional[PricingMode]:
        """Read-time view of the pricing mode; a fixed price wins on legacy rows carrying both."""
        if self.fixed_price is not None:
            return FixedPrice(self.fixed_price)
        if self.discount_percent is not None:
            return PercentageDiscount(self.discount_percent)
        return None

    def is_valid_at(self, instant: datetime) -> bool:
        """True when instant falls inside [valid_from, valid_until)."""
        if self.valid_from is not None and instant < self.valid_from:
            return False
        if self.valid_until is not None and instant >= self.valid_until:
            return False
        return True

    def overlaps(self, other: 'OverrideRecord') -> bool:
        """True when the two validity windows share at least one instant."""
        starts_before_other_ends = (
            other.valid_until is None
            or self.valid_from is None
            or self.valid_from < other.valid_until
        )
        other_starts_before_self_ends = (
            self.valid_until is None
            or other.valid_from is None
            or other.valid_from < self.valid_until
        )
        return starts_before_other_ends and other_starts_before_self_ends

    def to_dict(self) -> dict:
        """Flat, JSON-friendly representation (decimals as strings, ISO instants)."""
        return {
            'id': self.id,
            'client_id': self.client_id,
            'product_id': self.target.product_id,
            'category_name': self.target.category_name,
            'discount_percent': _str_or_none(self.discount_percent),
            'fixed_price': _str_or_none(self.fixed_price),
            'minimum_quantity': self.minimum_quantity,
            'valid_from': _iso(self.valid_from),
            'valid_until': _iso(self.valid_until),
            'is_active': self.is_active,
            'notes': self.notes,
            'created_by': self.created_by,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'OverrideRecord':
        """Inverse of to_dict()."""
        return cls.build(**{k: data.get(k) for k in RECORD_FIELDS if k in data})


# Flat field names accepted by build()/from_dict() and by registry patches
RECORD_FIELDS = (
    'id', 'client_id', 'product_id', 'category_name', 'discount_percent',
    'fixed_price', 'minimum_quantity', 'valid_from', 'valid_until',
    'is_active', 'notes', 'created_by', 'created_at', 'updated_at',
)


@dataclass
class ValidationResult:
    """Result of override validation."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class TraceStep:
    """A single step in the price resolution trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass
class PriceResolution:
    """The effective unit price for one line item and how it was reached."""
    final_price: Decimal
    base_price: Decimal
    quantity: int
    discount_applied: bool = False
    discount_amount: Decimal = ZERO
    applied_rule_id: Optional[str] = None
    applied_scope: Optional[str] = None  # "product" or "category"
    pricing_mode: Optional[str] = None  # "fixed_price" or "percentage"
    reason: Optional[str] = None
    as_of: Optional[datetime] = None
    trace: list[TraceStep] = field(default_factory=list)

    @property
    def line_total(self) -> Decimal:
        return quantize_money(self.final_price * self.quantity)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the trace for this resolution."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"→ {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"→ {t.step}: {t.description}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            'final_price': str(self.final_price),
            'base_price': str(self.base_price),
            'quantity': self.quantity,
            'line_total': str(self.line_total),
            'discount_applied': self.discount_applied,
            'discount_amount': str(self.discount_amount),
            'applied_rule_id': self.applied_rule_id,
            'applied_scope': self.applied_scope,
            'pricing_mode': self.pricing_mode,
            'reason': self.reason,
            'as_of': _iso(self.as_of),
            'trace': [
                {'step': t.step, 'description': t.description, 'value': t.value}
                for t in self.trace
            ],
        }


@dataclass
class QuoteLine:
    """One requested line of a multi-line quote."""
    product_id: str
    base_price: Any
    quantity: int
    category_name: Optional[str] = None


@dataclass
class QuoteResult:
    """Resolved prices for every line of a quote plus totals."""
    client_id: str
    lines: list[PriceResolution]
    total: Decimal = ZERO
    total_discount_amount: Decimal = ZERO

    @property
    def savings_percent(self) -> Decimal:
        """Share of the undiscounted total saved through overrides."""
        gross = self.total + self.total_discount_amount
        if self.total_discount_amount <= 0 or gross <= 0:
            return ZERO
        return quantize_money(self.total_discount_amount / gross * 100)

    def to_dict(self) -> dict:
        return {
            'client_id': self.client_id,
            'lines': [line.to_dict() for line in self.lines],
            'summary': {
                'total': str(self.total),
                'total_discount_amount': str(self.total_discount_amount),
                'savings_percent': str(self.savings_percent),
            },
        }
