"""Downloadable CSV templates kept in sync with each strategy's alias table."""

from __future__ import annotations

import csv
import io

from bulk_importer.services.import_strategies import ImportStrategy


def render_template(strategy: ImportStrategy) -> str:
    """Header row of accepted column names followed by sample rows, every cell quoted."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(strategy.template_header())
    writer.writerows(strategy.template_rows())
    return buffer.getvalue()
