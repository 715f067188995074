"""
Override Registry - validated CRUD over client price overrides.

Owns the correctness of the stored override set: per-record invariants are
checked before any write, and the overlap check plus the write run inside a
single store transaction together with the audit write. If the audit sink
rejects the event, the mutation is rolled back.
"""
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..audit.sink import (
    AuditSink,
    EVENT_OVERRIDE_CREATED,
    EVENT_OVERRIDE_DEACTIVATED,
    EVENT_OVERRIDE_DELETED,
    EVENT_OVERRIDE_UPDATED,
)
from ..cancellation import CancellationToken, check_cancelled
from ..engine.models import (
    OverrideRecord,
    RECORD_FIELDS,
    ValidationResult,
    parse_pricing_mode,
    to_utc,
    utc_now,
)
from ..errors import AuditWriteError, ConflictError, NotFoundError, ValidationError
from ..storage.override_store import OverrideStore, OverrideUnitOfWork
from ..utils.logging import get_logger

log = get_logger(__name__)

# Bookkeeping fields a patch may not touch
IMMUTABLE_FIELDS = frozenset({'id', 'created_at', 'created_by', 'updated_at'})
# Fields a patch may change but never clear
NON_NULLABLE_FIELDS = frozenset({'client_id', 'minimum_quantity', 'is_active'})


class ReferenceChecker:
    """Looks up clients and products owned by the rest of the system."""

    def client_exists(self, client_id: str) -> bool:
        raise NotImplementedError

    def product_exists(self, product_id: str) -> bool:
        raise NotImplementedError


class OverrideRegistry:
    """Service for managing client price overrides."""

    def __init__(
        self,
        store: OverrideStore,
        audit_sink: AuditSink,
        reference_checker: Optional[ReferenceChecker] = None,
        clock: Callable[[], datetime] = utc_now,
        expiry_window_days: int = 7,
    ):
        self.store = store
        self.audit_sink = audit_sink
        self.reference_checker = reference_checker
        self.expiry_window_days = expiry_window_days
        self._clock = clock

    # Validation

    def validate(self, record: OverrideRecord) -> ValidationResult:
        """Validate an override before saving (dry run, no conflict check)."""
        result = ValidationResult(valid=True)

        if not record.client_id:
            result.errors.append("client_id is required")

        kind = record.target.kind
        if kind == "none":
            result.errors.append("Either product_id or category_name is required")
        elif kind == "ambiguous":
            result.errors.append("product_id and category_name are mutually exclusive")

        try:
            parse_pricing_mode(record.discount_percent, record.fixed_price)
        except ValidationError as e:
            result.errors.extend(e.errors)

        if not isinstance(record.minimum_quantity, int) or record.minimum_quantity < 1:
            result.errors.append("minimum_quantity must be a positive integer")

        if record.valid_from and record.valid_until and record.valid_from >= record.valid_until:
            result.errors.append("valid_from must be before valid_until")

        now = self._clock()
        if record.valid_until and record.valid_until <= now:
            result.warnings.append("Override has expired (valid_until is in the past)")

        result.valid = not result.errors
        return result

    def _raise_if_invalid(self, record: OverrideRecord):
        result = self.validate(record)
        if not result.valid:
            log.warning("Rejected override %s: %s", record.id, "; ".join(result.errors))
            raise ValidationError(result.errors)

    def _check_references(self, record: OverrideRecord):
        if self.reference_checker is None:
            return
        if not self.reference_checker.client_exists(record.client_id):
            raise NotFoundError(f"Client '{record.client_id}' not found")
        if record.product_id and not self.reference_checker.product_exists(record.product_id):
            raise NotFoundError(f"Product '{record.product_id}' not found")

    def _check_conflicts(self, tx: OverrideUnitOfWork, record: OverrideRecord):
        """Raise ConflictError if another active override for the same target overlaps."""
        for existing in tx.find_active_for_target(record.client_id, record.target):
            if existing.id == record.id:
                continue
            if existing.overlaps(record):
                log.warning(
                    "Override %s conflicts with active override %s for client %s (%s)",
                    record.id, existing.id, record.client_id, record.target.describe(),
                )
                raise ConflictError(
                    f"Active override '{existing.id}' already covers {record.target.describe()} "
                    f"for client '{record.client_id}' in an overlapping period",
                    conflicting_id=existing.id,
                )

    def _audit(self, event_type: str, actor_id: Optional[str], payload: dict, timestamp: datetime):
        try:
            self.audit_sink.record(event_type, actor_id, payload, timestamp)
        except AuditWriteError:
            log.warning("Audit write for %s failed, rolling back", event_type)
            raise

    # Mutations

    def create(
        self,
        record: OverrideRecord,
        actor_id: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> OverrideRecord:
        """Create a new override."""
        check_cancelled(cancel, "create")
        now = self._clock()
        record = replace(
            record,
            valid_from=record.valid_from or now,
            created_by=record.created_by or actor_id,
            created_at=now,
            updated_at=now,
        )
        self._raise_if_invalid(record)
        self._check_references(record)

        with self.store.transaction() as tx:
            if tx.get(record.id) is not None:
                raise ConflictError(f"Override with ID '{record.id}' already exists", conflicting_id=record.id)
            if record.is_active:
                self._check_conflicts(tx, record)
            tx.insert(record)
            check_cancelled(cancel, "create")
            self._audit(EVENT_OVERRIDE_CREATED, actor_id, {'override': record.to_dict()}, now)

        log.info("Created override %s for client %s (%s)", record.id, record.client_id, record.target.describe())
        return record

    def update(
        self,
        override_id: str,
        patch: dict,
        actor_id: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> OverrideRecord:
        """Update an existing override; the merged record is fully re-validated."""
        check_cancelled(cancel, "update")
        unknown = sorted(set(patch) - set(RECORD_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown field(s): {', '.join(unknown)}")
        immutable = sorted(set(patch) & IMMUTABLE_FIELDS)
        if immutable:
            raise ValidationError(f"Field(s) cannot be changed: {', '.join(immutable)}")
        cleared = sorted(k for k in NON_NULLABLE_FIELDS if k in patch and patch[k] is None)
        if cleared:
            raise ValidationError(f"Field(s) cannot be null: {', '.join(cleared)}")

        now = self._clock()
        with self.store.transaction() as tx:
            current = tx.get(override_id)
            if current is None:
                raise NotFoundError(f"Override with ID '{override_id}' not found")

            merged = current.to_dict()
            merged.update(patch)
            merged['updated_at'] = now
            updated = OverrideRecord.from_dict(merged)
            if updated.valid_from is None:
                updated = replace(updated, valid_from=current.valid_from)

            self._raise_if_invalid(updated)
            self._check_references(updated)
            if updated.is_active:
                self._check_conflicts(tx, updated)

            tx.replace(updated)
            check_cancelled(cancel, "update")
            self._audit(EVENT_OVERRIDE_UPDATED, actor_id, {
                'override_id': override_id,
                'changed_fields': sorted(patch),
                'before': current.to_dict(),
                'after': updated.to_dict(),
            }, now)

        log.info("Updated override %s (%s)", override_id, ", ".join(sorted(patch)) or "no fields")
        return updated

    def deactivate(
        self,
        override_id: str,
        actor_id: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> OverrideRecord:
        """Disable an override; it stays stored for history."""
        check_cancelled(cancel, "deactivate")
        now = self._clock()
        with self.store.transaction() as tx:
            current = tx.get(override_id)
            if current is None:
                raise NotFoundError(f"Override with ID '{override_id}' not found")
            if not current.is_active:
                return current

            updated = replace(current, is_active=False, updated_at=now)
            tx.replace(updated)
            check_cancelled(cancel, "deactivate")
            self._audit(EVENT_OVERRIDE_DEACTIVATED, actor_id, {'override_id': override_id}, now)

        log.info("Deactivated override %s", override_id)
        return updated

    def delete(
        self,
        override_id: str,
        actor_id: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> OverrideRecord:
        """Hard-delete an override. Past audit entries are left untouched."""
        check_cancelled(cancel, "delete")
        now = self._clock()
        with self.store.transaction() as tx:
            current = tx.get(override_id)
            if current is None:
                raise NotFoundError(f"Override with ID '{override_id}' not found")
            tx.remove(override_id)
            check_cancelled(cancel, "delete")
            self._audit(EVENT_OVERRIDE_DELETED, actor_id, {
                'override_id': override_id,
                'snapshot': current.to_dict(),
            }, now)

        log.info("Deleted override %s", override_id)
        return current

    # Queries

    def get(self, override_id: str) -> OverrideRecord:
        """Get a single override by ID."""
        record = self.store.get(override_id)
        if record is None:
            raise NotFoundError(f"Override with ID '{override_id}' not found")
        return record

    def list_candidates_for(
        self,
        client_id: str,
        product_id: Optional[str],
        category_name: Optional[str],
    ) -> list[OverrideRecord]:
        """
        All active overrides of a client targeting the product or the category.

        Validity windows and quantity gates are not applied here; the resolver
        does that against its own as-of instant.
        """
        candidates = self.store.list_candidates(client_id, product_id, category_name)
        return sorted((r for r in candidates if r.is_active), key=lambda r: r.id)

    def list_overrides(
        self,
        client_id: Optional[str] = None,
        product_id: Optional[str] = None,
        category_name: Optional[str] = None,
        is_active: Optional[bool] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[OverrideRecord]:
        """List overrides newest first, optionally filtered and paginated."""
        records = [
            r for r in self.store.list_all()
            if (client_id is None or r.client_id == client_id)
            and (product_id is None or r.product_id == product_id)
            and (category_name is None or r.category_name == category_name)
            and (is_active is None or r.is_active == is_active)
        ]
        end = offset + limit if limit is not None else None
        return records[offset:end]

    def expiring(self, within_days: Optional[int] = None, as_of: Optional[datetime] = None) -> list[OverrideRecord]:
        """Active overrides whose validity ends within `within_days` (default: the configured window)."""
        if within_days is None:
            within_days = self.expiry_window_days
        start = to_utc(as_of) or self._clock()
        end = start + timedelta(days=within_days)
        records = [
            r for r in self.store.list_all()
            if r.is_active and r.valid_until is not None and start <= r.valid_until < end
        ]
        return sorted(records, key=lambda r: r.valid_until)

    def stats(self, as_of: Optional[datetime] = None) -> dict:
        """Get statistics about overrides."""
        now = to_utc(as_of) or self._clock()
        records = self.store.list_all()

        active = [r for r in records if r.is_active]
        expired = [r for r in records if r.valid_until is not None and r.valid_until <= now]
        by_scope: dict[str, int] = {}
        by_client: dict[str, int] = {}
        for r in records:
            by_scope[r.target.kind] = by_scope.get(r.target.kind, 0) + 1
            by_client[r.client_id] = by_client.get(r.client_id, 0) + 1

        return {
            'total': len(records),
            'active': len(active),
            'inactive': len(records) - len(active),
            'expired': len(expired),
            'by_scope': by_scope,
            'by_client': by_client,
        }
