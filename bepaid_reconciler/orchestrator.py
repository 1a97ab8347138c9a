"""
Main Orchestrator for bePaid Reconciler

This module ties together all the components and defines the
end-to-end flow of a smart file import:

    read → parse → validate → match contacts → classify → import

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written until the operator has seen the classification
  (analyze and execute are separate steps)
- Matches are never re-imported
- Every step is audited under one correlation id

The report flows (discrepancies, unlinked payments, autolink, purge)
are plain services; create_app_components wires them to the same
storage and audit logger.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
from uuid import UUID

import structlog

from bepaid_reconciler.audit import AuditLogger, create_correlation_id
from bepaid_reconciler.config import ImportSettings, get_settings
from bepaid_reconciler.matching import ContactMatcher
from bepaid_reconciler.models.reports import (
    ImportSummary,
    ImportValidationResult,
    ReconciliationReport,
)
from bepaid_reconciler.parsing import ParseError, parse_rows, read_export
from bepaid_reconciler.reconciliation import (
    BatchImporter,
    CardAutolinker,
    DiscrepancyAnalyzer,
    ImportPurger,
    RawTransactionSync,
    UnlinkedPaymentsReporter,
    classify,
)
from bepaid_reconciler.services.storage import (
    InMemoryStorage,
    ReconciliationStorageInterface,
    StorageError,
    SupabaseAuditStorage,
    SupabaseClient,
    SupabaseReconciliationStorage,
)
from bepaid_reconciler.validation import TransactionValidator


logger = structlog.get_logger()


class ImportFlowError(Exception):
    """An import could not be analyzed or executed."""
    pass


class SmartImportFlow:
    """
    Orchestrates the smart import of a bePaid export.

    Flow:
    1. Read → CSV/XLSX into raw rows
    2. Parse → normalized transactions
    3. Validate → drop duplicate UIDs, flag suspicious rows
    4. Match → attach contacts by email, card, or name
    5. Classify → new / update / match / conflict
    6. Review → operator chooses what to import (PAUSE)
    7. Execute → batch import into the reconcile queue

    Steps 1-5 never write to the database.
    """

    def __init__(
        self,
        storage: ReconciliationStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[ImportSettings] = None,
        validator: Optional[TransactionValidator] = None,
        matcher: Optional[ContactMatcher] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().imports
        self._validator = validator or TransactionValidator(self._settings)
        self._matcher = matcher or ContactMatcher(
            storage,
            fuzzy_names=self._settings.fuzzy_name_matching,
        )

    async def analyze(
        self,
        source: Union[str, Path, bytes],
        filename: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[ReconciliationReport, ImportValidationResult]:
        """
        Read an export and classify it against the database.

        Args:
            source: Path to the export or its bytes
            filename: Original file name (required for bytes)
            correlation_id: Ties audit events to the user action

        Returns:
            (report, validation)

        Raises:
            ImportFlowError: If the file cannot be read or parsed
        """
        correlation_id = correlation_id or create_correlation_id()

        if isinstance(source, (str, Path)):
            filename = filename or Path(source).name
            data = Path(source).read_bytes()
        else:
            data = source
        filename = filename or "upload"

        max_size = get_settings().app.max_upload_size_bytes
        if len(data) > max_size:
            raise ImportFlowError(
                f"File is too large ({len(data)} bytes, limit {max_size})"
            )

        await self._audit_logger.log_import_started(
            filename=filename,
            file_size=len(data),
            correlation_id=correlation_id,
        )

        # Step 1-2: read and parse
        try:
            rows = read_export(data, filename=filename)
            transactions = parse_rows(rows)
        except ParseError as e:
            await self._audit_logger.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"filename": filename},
                correlation_id=correlation_id,
            )
            raise ImportFlowError(str(e)) from e

        await self._audit_logger.log_file_parsed(
            filename=filename,
            row_count=len(transactions),
            correlation_id=correlation_id,
        )

        # Step 3: validate
        validation = self._validator.validate(transactions)

        # Step 4-5: match and classify
        try:
            by_method = await self._matcher.match(validation.transactions)
            await self._audit_logger.log_contacts_matched(
                by_method=by_method,
                correlation_id=correlation_id,
            )
            report = await classify(
                validation.transactions,
                self._storage,
                amount_tolerance=self._settings.amount_tolerance,
            )
        except StorageError as e:
            await self._audit_logger.log_external_service_error(
                service="supabase",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        await self._audit_logger.log_reconciliation_completed(
            counts=report.counts(),
            correlation_id=correlation_id,
        )
        return report, validation

    async def execute(
        self,
        report: ReconciliationReport,
        include_new: bool = True,
        include_updates: bool = True,
        include_conflicts: bool = False,
        auto_create_orders: Optional[bool] = None,
        create_ghost_profiles: Optional[bool] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ImportSummary:
        """
        Import the operator's selection of a classified export.

        Returns:
            ImportSummary with per-record statuses
        """
        correlation_id = correlation_id or create_correlation_id()
        selected = report.select(
            new=include_new,
            updates=include_updates,
            conflicts=include_conflicts,
        )
        if not selected:
            logger.info("import_nothing_selected", **report.counts())
            return ImportSummary()

        importer = BatchImporter(
            self._storage,
            audit_logger=self._audit_logger,
            settings=self._settings,
            auto_create_orders=auto_create_orders,
            create_ghost_profiles=create_ghost_profiles,
        )
        return await importer.import_transactions(selected, correlation_id=correlation_id)

    async def run(
        self,
        source: Union[str, Path, bytes],
        filename: Optional[str] = None,
        dry_run: bool = False,
        **execute_options,
    ) -> tuple[ReconciliationReport, ImportValidationResult, Optional[ImportSummary]]:
        """
        Analyze and, unless dry_run, execute in one call.

        Returns:
            (report, validation, summary). summary is None on a dry run.
        """
        correlation_id = create_correlation_id()
        report, validation = await self.analyze(
            source,
            filename=filename,
            correlation_id=correlation_id,
        )
        if dry_run:
            return report, validation, None
        summary = await self.execute(report, correlation_id=correlation_id, **execute_options)
        return report, validation, summary


@dataclass
class AppComponents:
    """Every flow, wired to one storage backend."""

    storage: ReconciliationStorageInterface
    audit_logger: AuditLogger
    import_flow: SmartImportFlow
    raw_sync: RawTransactionSync
    discrepancies: DiscrepancyAnalyzer
    unlinked: UnlinkedPaymentsReporter
    autolinker: CardAutolinker
    purger: ImportPurger


def create_app_components(
    use_storage: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to connect to Supabase.
                    Set to False for an in-memory store (tests, offline runs).

    Returns:
        AppComponents
    """
    if use_storage:
        client = SupabaseClient()
        storage = SupabaseReconciliationStorage(client)
        audit_logger = AuditLogger(SupabaseAuditStorage(client))
    else:
        storage = InMemoryStorage()
        audit_logger = AuditLogger(storage)

    return AppComponents(
        storage=storage,
        audit_logger=audit_logger,
        import_flow=SmartImportFlow(storage, audit_logger),
        raw_sync=RawTransactionSync(storage, audit_logger),
        discrepancies=DiscrepancyAnalyzer(storage),
        unlinked=UnlinkedPaymentsReporter(storage),
        autolinker=CardAutolinker(storage, audit_logger),
        purger=ImportPurger(storage, audit_logger),
    )
