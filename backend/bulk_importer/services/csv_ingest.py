"""Business logic for chunked CSV ingestion."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from fastapi import UploadFile
from sqlalchemy.exc import DisconnectionError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from bulk_importer.services.import_strategies import ImportStrategy
from bulk_importer.storage import blob_store

logger = logging.getLogger(__name__)

# Only the first N successful entities are kept in a job's stored results
RESULTS_SAMPLE_LIMIT = 100


@dataclass
class ChunkResult:
    """Outcome of one chunk (or, after ``merge``, of every chunk so far)."""

    successful: int = 0
    failed: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    successful_entities: list[dict[str, Any]] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.successful + self.failed

    def add_failure(self, row: int, identifier: str | None, message: str) -> None:
        self.failed += 1
        self.errors.append({"row": row, "identifier": identifier, "message": message})

    def add_success(self, summary: dict[str, Any]) -> None:
        self.successful += 1
        self.successful_entities.append(summary)

    def merge(self, other: ChunkResult) -> None:
        self.successful += other.successful
        self.failed += other.failed
        self.errors.extend(other.errors)
        remaining = RESULTS_SAMPLE_LIMIT - len(self.successful_entities)
        if remaining > 0:
            self.successful_entities.extend(other.successful_entities[:remaining])

    def summary(self) -> dict[str, Any]:
        return {
            "successful": self.successful,
            "failed": self.failed,
            "successfulEntities": self.successful_entities[:RESULTS_SAMPLE_LIMIT],
        }


async def stage_file(upload_file: UploadFile, key: str) -> str:
    """Persist uploaded CSV to blob storage and return its URL."""
    try:
        await upload_file.seek(0)
        return blob_store.store(upload_file.file, key)
    except OSError as e:
        logger.error(f"OS error saving uploaded file: {e}", exc_info=True)
        raise


def load_rows(strategy: ImportStrategy, blob_url: str) -> list[Any]:
    """Download the stored CSV and parse it into typed rows.

    Raises:
        BlobFetchError: when the blob cannot be downloaded.
        CSVParseError: when the file is empty/header-only or misses required columns.
    """
    text = blob_store.fetch(blob_url)
    rows = strategy.parse(text)
    logger.info(f"Parsed {len(rows)} {strategy.import_type} rows from {blob_url}")
    return rows


def process_chunk(
    strategy: ImportStrategy,
    rows: Sequence[Any],
    session: Session,
    tenant_id: str,
    start_index: int,
) -> ChunkResult:
    """Validate, de-duplicate and write each row; never raises for row-level problems.

    Each row's grouped write runs inside a SAVEPOINT so the entity and its
    auxiliary records land together or not at all. The surrounding
    transaction is left open for the caller to commit together with the
    job's progress counters. Connection-level database errors propagate.
    """
    result = ChunkResult()

    for offset, row in enumerate(rows):
        # 1-based file line; line 1 is the header
        row_number = start_index + offset + 2
        identifier = strategy.identifier(row)

        violations = strategy.validate_row(row)
        if violations:
            result.add_failure(row_number, identifier, ", ".join(violations))
            continue

        try:
            with session.begin_nested():
                if strategy.check_duplicate(session, tenant_id, row):
                    result.add_failure(row_number, identifier, strategy.duplicate_message)
                    continue
                summary = strategy.write_row(session, tenant_id, row)
        except IntegrityError as exc:
            logger.warning(f"Row {row_number} rejected by constraint: {exc.orig}")
            result.add_failure(row_number, identifier, strategy.duplicate_message)
            continue
        except (OperationalError, DisconnectionError):
            raise
        except Exception as exc:
            logger.warning(f"Error processing {strategy.import_type} row {row_number}: {exc}")
            result.add_failure(row_number, identifier, str(exc) or "Unknown error occurred")
            continue

        result.add_success(summary)

    return result
