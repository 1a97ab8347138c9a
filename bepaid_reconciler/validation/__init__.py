"""Validation package."""

from bepaid_reconciler.validation.validator import TransactionValidator

__all__ = ["TransactionValidator"]
