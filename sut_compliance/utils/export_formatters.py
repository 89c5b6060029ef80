"""
Export Formatters for Compliance Results.

Flattens billed lines and their verdicts into one row per line (input
columns first, verdict columns after) and serializes them as CSV or JSON.
"""

import csv
import io
import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Sequence

from sut_compliance.schemas.billing import BillingRow
from sut_compliance.schemas.compliance import ComplianceResult


class ExportFormat(str, Enum):
    """Supported export formats."""

    JSON = "json"
    CSV = "csv"


INPUT_COLUMNS: list[tuple[str, str]] = [
    ("Tarih", "date"),
    ("Saat", "time"),
    ("Uzmanlık", "specialty"),
    ("Doktor", "physician"),
    ("İşlem Kodu", "procedure_code"),
    ("İşlem Adı", "procedure_name"),
    ("Miktar", "quantity"),
    ("Puan", "points"),
    ("Fiyat", "price"),
    ("Tutar", "amount"),
    ("Hasta", "patient_id"),
    ("Tanı", "diagnosis"),
    ("Diş No", "tooth_number"),
    ("Yaş", "patient_age"),
    ("İşlem No", "operation_number"),
]

VERDICT_COLUMNS: list[str] = [
    "Uygunluk Durumu",
    "Eşleşme",
    "Güven",
    "İhlal Sayısı",
    "İhlal Açıklaması",
    "Kaynak",
    "Referans Kural",
    "Puan Farkı",
    "Fiyat Farkı",
]


class JSONEncoder(json.JSONEncoder):
    """Handles datetime, date and Enum values."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


def build_export_rows(
    rows: Sequence[BillingRow],
    results: Sequence[ComplianceResult],
    extra_columns: Optional[Sequence[str]] = None,
) -> list[dict[str, Any]]:
    """
    One flat dict per billed line, in input order.

    Args:
        rows: Billed lines
        results: Verdicts, same length and order as rows
        extra_columns: Keys of ``BillingRow.extra`` to export between the
            input and verdict columns

    Returns:
        List of ordered dicts keyed by column header
    """
    if len(rows) != len(results):
        raise ValueError(f"{len(rows)} rows but {len(results)} results")

    extras = list(extra_columns or [])
    exported: list[dict[str, Any]] = []
    for row, result in zip(rows, results):
        record: dict[str, Any] = {header: getattr(row, field) for header, field in INPUT_COLUMNS}
        for key in extras:
            record[key] = row.extra.get(key, "")

        record["Uygunluk Durumu"] = result.status.value
        record["Eşleşme"] = "Eşleşti" if result.matched else "Eşleşmedi"
        record["Güven"] = result.confidence.value
        record["İhlal Sayısı"] = len(result.violations)
        record["İhlal Açıklaması"] = " | ".join(f"[{v.code.value}] {v.explanation}" for v in result.violations)
        record["Kaynak"] = result.entry.primary_source.value if result.entry else ""
        record["Referans Kural"] = " | ".join(v.clause for v in result.violations)
        record["Puan Farkı"] = result.point_delta
        record["Fiyat Farkı"] = result.price_delta
        exported.append(record)
    return exported


def format_as_json(export_rows: list[dict[str, Any]]) -> str:
    """Serialize export rows as a JSON array."""
    return json.dumps(export_rows, cls=JSONEncoder, ensure_ascii=False, indent=2)


def format_as_csv(export_rows: list[dict[str, Any]]) -> str:
    """Serialize export rows as CSV with a header line."""
    output = io.StringIO()
    if not export_rows:
        writer = csv.writer(output)
        writer.writerow([header for header, _ in INPUT_COLUMNS] + VERDICT_COLUMNS)
        return output.getvalue()

    dict_writer = csv.DictWriter(output, fieldnames=list(export_rows[0].keys()))
    dict_writer.writeheader()
    for record in export_rows:
        dict_writer.writerow({key: _format_value(value) for key, value in record.items()})
    return output.getvalue()


def _format_value(value: Any) -> str:
    """Format a value for CSV output."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, list):
        return ",".join(str(v) for v in value)
    return str(value)
