"""
bePaid Reconciler - Source Package

Reconciliation tooling for bePaid payment-provider exports.
Parses CSV/Excel statements, matches transactions to contacts and
stages them in the reconciliation queue of the managed database.

DESIGN PRINCIPLES:
1. Parse → normalize → match → classify → upsert
2. Never overwrite a link that points to another profile
3. Dry-run first for every bulk write
4. One bad record never aborts a batch
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "bePaid Reconciler Team"
