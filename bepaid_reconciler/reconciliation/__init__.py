"""Reconciliation package: classification, import and the operator reports."""

from bepaid_reconciler.reconciliation.autolink import CardAutolinker
from bepaid_reconciler.reconciliation.classifier import classify, classify_one
from bepaid_reconciler.reconciliation.discrepancy import DiscrepancyAnalyzer
from bepaid_reconciler.reconciliation.importer import (
    BatchImporter,
    RawTransactionSync,
    build_queue_payload,
)
from bepaid_reconciler.reconciliation.purge import ImportPurger
from bepaid_reconciler.reconciliation.unlinked import UnlinkedPaymentsReporter

__all__ = [
    "BatchImporter",
    "CardAutolinker",
    "DiscrepancyAnalyzer",
    "ImportPurger",
    "RawTransactionSync",
    "UnlinkedPaymentsReporter",
    "build_queue_payload",
    "classify",
    "classify_one",
]
