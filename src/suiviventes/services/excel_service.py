from __future__ import annotations

import csv
import io
import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from suiviventes.domain.errors import ValidationError
from suiviventes.domain.models import ImportPreview, ReconciliationResult, Sale, StockItem
from suiviventes.services.duplicate_service import find_sale_duplicates, find_stock_duplicates
from suiviventes.services.row_validation import validate_sales_rows, validate_stock_rows

log = logging.getLogger("suiviventes.imports")

SUPPORTED_EXTENSIONS = (".xlsx", ".xlsm", ".csv")
# French Excel saves "CSV (point-virgule)" as cp1252.
CSV_ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")
EMPTY_HEADER = "__EMPTY"


@dataclass(frozen=True)
class ImportOutcome:
    imported: int
    reconciliation: Optional[ReconciliationResult] = None


def _header_names(cells) -> list[str]:
    """Header texts; blank cells get ``__EMPTY``, ``__EMPTY_1``... placeholders."""
    names = []
    blanks = 0
    for cell in cells:
        text = "" if cell is None else str(cell).strip()
        if not text:
            text = EMPTY_HEADER if blanks == 0 else f"{EMPTY_HEADER}_{blanks}"
            blanks += 1
        names.append(text)
    return names


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _rows_from_matrix(matrix) -> list[dict]:
    it = iter(matrix)
    first = next(it, None)
    if first is None:
        return []
    headers = _header_names(first)
    rows = []
    for values in it:
        values = list(values)
        if all(_is_blank(v) for v in values):
            continue
        rows.append({h: (values[i] if i < len(values) else None) for i, h in enumerate(headers)})
    return rows


def _read_xlsx(path: Path) -> list[dict]:
    wb = load_workbook(path, read_only=True, data_only=True)
    try:
        ws = wb.worksheets[0]
        return _rows_from_matrix(ws.iter_rows(values_only=True))
    finally:
        wb.close()


def _decode(raw: bytes, name: str) -> str:
    for encoding in CSV_ENCODINGS:
        try:
            text = raw.decode(encoding)
        except UnicodeDecodeError:
            continue
        if encoding != CSV_ENCODINGS[0]:
            log.info("csv_encoding_fallback file=%s encoding=%s", name, encoding)
        return text
    raise ValidationError(f"Could not decode {name}.")


def _read_csv(path: Path) -> list[dict]:
    text = _decode(path.read_bytes(), path.name)
    if not text.strip():
        return []
    header_line = text.splitlines()[0]
    delimiter = ";" if header_line.count(";") >= header_line.count(",") else ","
    return _rows_from_matrix(csv.reader(io.StringIO(text), delimiter=delimiter))


class ExcelService:
    def __init__(self, storage, reconciler):
        self.storage = storage
        self.reconciler = reconciler

    def read_rows(self, path: str | Path) -> list[dict]:
        path = Path(path)
        ext = path.suffix.lower()
        if ext not in SUPPORTED_EXTENSIONS:
            raise ValidationError(f"Unsupported file type: {ext or path.name}")
        if not path.exists():
            raise ValidationError(f"File not found: {path}")

        try:
            rows = _read_csv(path) if ext == ".csv" else _read_xlsx(path)
        except (csv.Error, InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
            log.warning("import_file_unreadable file=%s error=%s", path.name, exc)
            raise ValidationError(f"Could not read {path.name}: {exc}") from exc
        if not rows:
            raise ValidationError("The file contains no data rows.")
        log.info("import_file_read file=%s rows=%s", path.name, len(rows))
        return rows

    def preview_sales(self, path: str | Path) -> ImportPreview:
        sales, errors = validate_sales_rows(self.read_rows(path))
        data = find_sale_duplicates(sales, self.storage.get_sales())
        preview = ImportPreview(
            kind="sales",
            data=data,
            total_rows=len(sales),
            total_amount=sum(s.total_amount for s in sales),
            total_quantity=sum(s.quantity for s in sales),
            duplicates_count=sum(1 for d in data if d.is_duplicate),
            invalid_rows=errors,
        )
        log.info(
            "import_preview kind=sales rows=%s duplicates=%s invalid=%s",
            preview.total_rows,
            preview.duplicates_count,
            len(errors),
        )
        return preview

    def preview_stock(self, path: str | Path) -> ImportPreview:
        items, errors = validate_stock_rows(self.read_rows(path))
        data = find_stock_duplicates(items, self.storage.get_stock())
        preview = ImportPreview(
            kind="stock",
            data=data,
            total_rows=len(items),
            total_quantity=sum(i.current_stock for i in items),
            duplicates_count=sum(1 for d in data if d.is_duplicate),
            invalid_rows=errors,
        )
        log.info(
            "import_preview kind=stock rows=%s duplicates=%s invalid=%s",
            preview.total_rows,
            preview.duplicates_count,
            len(errors),
        )
        return preview

    def commit(self, preview: ImportPreview) -> ImportOutcome:
        """Persist the kept rows of a preview; sales also move stock."""
        if not preview.can_commit:
            raise ValidationError(f"Import blocked: {len(preview.invalid_rows)} invalid row(s) must be fixed first.")

        kept = preview.kept_items()
        if preview.kind == "sales":
            sales = [s for s in kept if isinstance(s, Sale)]
            self.storage.add_sales(sales)
            reconciliation = self.reconciler.apply_batch(sales)
            log.info("import_committed kind=sales imported=%s", len(sales))
            return ImportOutcome(imported=len(sales), reconciliation=reconciliation)

        if preview.kind == "stock":
            items = [i for i in kept if isinstance(i, StockItem)]
            self.storage.add_stock_items(items)
            log.info("import_committed kind=stock imported=%s", len(items))
            return ImportOutcome(imported=len(items))

        raise ValidationError(f"Unknown import kind: {preview.kind}")
