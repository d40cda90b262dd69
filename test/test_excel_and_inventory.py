from pathlib import Path

import pytest
from conftest import SALE_DATE, add_stock_item, build_app, cart_item, payment
from openpyxl import Workbook, load_workbook

from atenea.domain.errors import DuplicateError, NotFoundError, ValidationError
from atenea.domain.models import MultiSaleData, PaymentMethod
from atenea.services.excel_service import parse_sizes


def test_add_item_validates_and_rejects_duplicates(tmp_path: Path):
    app = build_app(tmp_path)
    item = add_stock_item(app, "Remera  Básica", {"S": 1, "M": 2})

    assert item.name == "Remera Básica"
    assert item.stock_total == 3
    assert app.inventory.get_item(item.id).sizes == {"S": 1, "M": 2}

    with pytest.raises(DuplicateError):
        add_stock_item(app, " remera básica ")
    with pytest.raises(ValidationError, match="Price"):
        add_stock_item(app, "Gorra", price=0)
    with pytest.raises(ValidationError):
        add_stock_item(app, "Gorra", sizes={"U": -1})
    with pytest.raises(NotFoundError):
        app.inventory.get_item("missing")


def test_parse_sizes():
    assert parse_sizes("S=2; M=1;") == {"S": 2, "M": 1}
    assert parse_sizes(3) == {"U": 3}
    assert parse_sizes(None) == {}
    with pytest.raises(ValueError):
        parse_sizes("S2")


def _write_sheet(path: Path, rows):
    wb = Workbook()
    ws = wb.active
    ws.append(["name", "category", "subcategory", "material", "cost_price", "selling_price", "sizes"])
    for r in rows:
        ws.append(r)
    wb.save(path)


def test_import_creates_and_restocks(tmp_path: Path):
    app = build_app(tmp_path)
    existing = add_stock_item(app, "Remera", {"M": 1})
    path = tmp_path / "stock.xlsx"
    _write_sheet(path, [
        ["remera", "Indumentaria", None, None, 2000, 5000, "M=2;L=3"],
        ["Jean", "Indumentaria", "Pantalones", "Denim", 9000, 20000, "40=1;42=2"],
        [None, "Indumentaria", None, None, 1, 1, "U=1"],
        ["Roto", "Indumentaria", None, None, 1, 1, "U=x"],
    ])

    ok, skipped = app.excel.import_inventory_excel(str(path))

    assert (ok, skipped) == (2, 2)
    assert app.inventory.get_item(existing.id).sizes == {"M": 3, "L": 3}
    jean = app.inventory.find_by_name("jean")
    assert jean.sizes == {"40": 1, "42": 2}
    assert jean.material == "Denim"
    assert {i.name for i in app.repo.inventory} == {"Remera", "Jean"}


def test_import_requires_headers(tmp_path: Path):
    app = build_app(tmp_path)
    path = tmp_path / "bad.xlsx"
    wb = Workbook()
    wb.active.append(["nombre", "precio"])
    wb.save(path)

    with pytest.raises(ValidationError, match="Missing column header"):
        app.excel.import_inventory_excel(str(path))


def test_inventory_export_can_be_imported_back(tmp_path: Path):
    app = build_app(tmp_path)
    add_stock_item(app, "Remera", {"S": 1, "M": 2})
    path = tmp_path / "inventario.xlsx"

    assert app.excel.export_inventory_excel(str(path)) == 1

    ws = load_workbook(path).active
    assert ws.cell(row=2, column=1).value == "Remera"
    assert ws.cell(row=2, column=7).value == "S=1;M=2"

    copy_dir = tmp_path / "copy"
    copy_dir.mkdir()
    other = build_app(copy_dir)
    assert other.excel.import_inventory_excel(str(path)) == (1, 0)
    assert other.inventory.find_by_name("Remera").sizes == {"S": 1, "M": 2}


def test_transactions_export(tmp_path: Path):
    app = build_app(tmp_path)
    app.settlement.save(
        MultiSaleData(
            date=SALE_DATE,
            items=[cart_item("a", 5000, quantity=2)],
            payments=[payment(PaymentMethod.CASH, 6000), payment(PaymentMethod.DEBIT, 5000)],
        )
    )
    app.settlement.save(
        MultiSaleData(date="2025-04-01", items=[cart_item("b", 3000)], payments=[payment(PaymentMethod.CASH, 3000)])
    )
    path = tmp_path / "transacciones.xlsx"

    app.excel.export_transactions_excel(str(path), "2025-03-01", "2025-03-31")

    wb = load_workbook(path)
    ws = wb["Transacciones"]
    assert ws.max_row == 2
    assert ws.cell(row=2, column=2).value == "V250314001"
    assert ws.cell(row=2, column=9).value == 10000
    assert ws.cell(row=2, column=11).value == "Efectivo 6000 + Débito 5000"
    vouchers = wb["Vales"]
    assert vouchers.max_row == 2
    assert vouchers.cell(row=2, column=2).value == 1000
