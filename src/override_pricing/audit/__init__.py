"""Audit subpackage - sinks for resolution and mutation events."""
from .sink import (
    AuditEntry,
    AuditSink,
    InMemoryAuditSink,
    LoggingAuditSink,
    SQLiteAuditSink,
    ErrorReporter,
    LoggingErrorReporter,
    CollectingErrorReporter,
    EVENT_PRICE_RESOLVED,
    EVENT_OVERRIDE_CREATED,
    EVENT_OVERRIDE_UPDATED,
    EVENT_OVERRIDE_DEACTIVATED,
    EVENT_OVERRIDE_DELETED,
)

__all__ = [
    'AuditEntry', 'AuditSink', 'InMemoryAuditSink', 'LoggingAuditSink', 'SQLiteAuditSink',
    'ErrorReporter', 'LoggingErrorReporter', 'CollectingErrorReporter',
    'EVENT_PRICE_RESOLVED', 'EVENT_OVERRIDE_CREATED', 'EVENT_OVERRIDE_UPDATED',
    'EVENT_OVERRIDE_DEACTIVATED', 'EVENT_OVERRIDE_DELETED',
]
