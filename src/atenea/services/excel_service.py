from __future__ import annotations

import logging

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from atenea.domain.errors import ValidationError
from atenea.domain.models import VOUCHER_ACTIVE, Identity
from atenea.services.auth_service import ensure_allowed

log = logging.getLogger(__name__)

IMPORT_COLUMNS = ["name", "category", "subcategory", "material", "cost_price", "selling_price", "sizes"]


def parse_sizes(value) -> dict[str, int]:
    """``"S=2;M=1"`` -> ``{"S": 2, "M": 1}``. A bare number means one size ``U``."""
    if value is None or str(value).strip() == "":
        return {}
    if isinstance(value, (int, float)):
        return {"U": int(value)}
    sizes: dict[str, int] = {}
    for part in str(value).split(";"):
        part = part.strip()
        if not part:
            continue
        if "=" not in part:
            raise ValueError(f"Bad size entry: {part!r}")
        size, qty = part.split("=", 1)
        size = size.strip()
        if not size:
            raise ValueError(f"Bad size entry: {part!r}")
        sizes[size] = sizes.get(size, 0) + int(float(qty))
    return sizes


def format_sizes(sizes: dict[str, int]) -> str:
    return ";".join(f"{k}={v}" for k, v in sizes.items())


class ExcelService:
    def __init__(self, repo, inventory_service, stock_ledger, identity: Identity | None = None):
        self.repo = repo
        self.inventory = inventory_service
        self.stock = stock_ledger
        self.identity = identity

    def import_inventory_excel(self, path: str) -> tuple[int, int]:
        """
        Each row is either a new item or a restock (quantities are added) of an
        existing item with the same name.
        Headers:
          name | category | subcategory | material | cost_price | selling_price | sizes
        """
        ensure_allowed(self.identity, "import_excel")
        wb = load_workbook(path)
        ws = wb.active

        headers = {}
        for col in range(1, ws.max_column + 1):
            v = ws.cell(row=1, column=col).value
            if isinstance(v, str):
                headers[v.strip().lower()] = col

        for r in ["name", "category", "selling_price", "sizes"]:
            if r not in headers:
                raise ValidationError(f"Missing column header: {r}")

        def cell(row: int, name: str):
            col = headers.get(name)
            return ws.cell(row=row, column=col).value if col else None

        ok = 0
        skipped = 0

        for row in range(2, ws.max_row + 1):
            try:
                name = cell(row, "name")
                if not name or not str(name).strip():
                    skipped += 1
                    continue
                sizes = parse_sizes(cell(row, "sizes"))
                if any(q < 0 for q in sizes.values()):
                    skipped += 1
                    continue

                existing = self.inventory.find_by_name(str(name))
                if existing:
                    for size, qty in sizes.items():
                        if qty > 0:
                            self.stock.restock(existing.id, size, qty)
                else:
                    self.inventory.add_item(
                        name=str(name),
                        category=str(cell(row, "category") or ""),
                        sizes=sizes,
                        cost_price=int(float(cell(row, "cost_price") or 0)),
                        selling_price=int(float(cell(row, "selling_price") or 0)),
                        subcategory=cell(row, "subcategory"),
                        material=cell(row, "material"),
                    )
                ok += 1
            except Exception as e:
                log.warning("Excel import skipped row %s: %s", row, e)
                skipped += 1

        self.repo.refresh()
        log.info("inventory_imported path=%s ok=%s skipped=%s", path, ok, skipped)
        return ok, skipped

    def export_inventory_excel(self, path: str) -> int:
        """Writes the inventory in the same layout the importer reads."""
        ensure_allowed(self.identity, "export_report")
        wb = Workbook()
        ws = wb.active
        ws.title = "Inventario"
        ws.append(IMPORT_COLUMNS)
        for c in ws[1]:
            c.font = Font(bold=True)

        items = self.inventory.list_items()
        for item in items:
            ws.append([
                item.name, item.category, item.subcategory or "", item.material or "",
                item.cost_price, item.selling_price, format_sizes(item.sizes),
            ])
        ws.freeze_panes = "A2"
        wb.save(path)
        log.info("inventory_exported path=%s items=%s", path, len(items))
        return len(items)

    def export_transactions_excel(self, path: str, start_iso: str, end_iso: str) -> None:
        ensure_allowed(self.identity, "export_report")
        wb = Workbook()

        def money(cell):
            cell.number_format = "#,##0"

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def set_widths(ws, widths: dict[str, int]):
            for col, w in widths.items():
                ws.column_dimensions[col].width = w

        def add_table(ws, name: str, end_row: int, end_col: int):
            tab = Table(displayName=name, ref=f"A1:{get_column_letter(end_col)}{end_row}")
            tab.tableStyleInfo = TableStyleInfo(
                name="TableStyleMedium9",
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(tab)

        lines = self.repo.sales_between(start_iso, end_iso)

        ws = wb.active
        ws.title = "Transacciones"
        ws.append([
            "Fecha", "Transacción", "Producto", "Talle",
            "Cantidad", "Precio lista", "Precio", "Costo", "Total",
            "Medio de pago", "Pagos", "Estado", "Vence",
        ])
        bold_row(ws, 1)

        for out_row, line in enumerate(lines, start=2):
            ws.append([
                line.date, line.transaction_id, line.product_name, line.size or "",
                line.quantity, line.list_price, line.price, line.cost_price, line.line_total,
                line.payment_method,
                " + ".join(f"{p.method.value} {p.amount}" for p in line.payments),
                line.status, (line.expires_at or "")[:10],
            ])
            for col in "FGHI":
                money(ws[f"{col}{out_row}"])

        ws.freeze_panes = "A2"
        set_widths(ws, {
            "A": 12, "B": 14, "C": 34, "D": 8, "E": 9, "F": 13, "G": 13,
            "H": 13, "I": 13, "J": 16, "K": 34, "L": 12, "M": 12,
        })
        if ws.max_row >= 2:
            add_table(ws, "Transacciones", ws.max_row, 13)

        ws2 = wb.create_sheet("Vales")
        ws2.append(["Código", "Monto inicial", "Saldo", "Estado", "Vence", "Creado"])
        bold_row(ws2, 1)
        for out_row, v in enumerate(self.repo.list_vouchers(VOUCHER_ACTIVE), start=2):
            ws2.append([v.code, v.initial_amount, v.current_amount, v.status, v.expires_at[:10], v.created_at[:10]])
            money(ws2[f"B{out_row}"])
            money(ws2[f"C{out_row}"])
        set_widths(ws2, {"A": 22, "B": 14, "C": 14, "D": 10, "E": 12, "F": 12})
        if ws2.max_row >= 2:
            add_table(ws2, "Vales", ws2.max_row, 6)

        wb.save(path)
        log.info("transactions_exported path=%s lines=%s from=%s to=%s", path, len(lines), start_iso, end_iso)
