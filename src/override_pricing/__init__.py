"""
Override Pricing Package

Client-specific price override resolution for B2B ordering.
Resolves the unit price for a line item from product- or category-scoped
override rules (fixed price or percentage discount) with quantity and
validity-window gating.
"""

__version__ = "1.0.0"
