import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

SALE_DATE = "2025-03-14"
NOW = datetime(2025, 3, 14, 15, 30, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def build_app(tmp_path: Path, user_id=None, clock=None, profiles=None):
    from atenea.application.container import build_container
    from atenea.config import BackendSettings
    from atenea.repositories.sqlite_repo import SqliteBackend

    db = tmp_path / "atenea.db"
    if profiles:
        backend = SqliteBackend(db)
        backend.init_db()
        backend.insert("profiles", [{"id": uid, "role": role} for uid, role in profiles.items()])
    return build_container(
        db,
        settings=BackendSettings(kind="sqlite"),
        user_id=user_id,
        clock=clock or FixedClock(),
    )


def add_stock_item(app, name: str = "Remera", sizes=None, price: int = 5000, cost: int = 2000):
    return app.inventory.add_item(
        name=name,
        category="Indumentaria",
        sizes=sizes if sizes is not None else {"M": 5},
        cost_price=cost,
        selling_price=price,
    )


def cart_item(item_id: str, list_price: int, quantity: int = 1, product: str = "Remera", **kw):
    from atenea.domain.models import CartLineItem

    return CartLineItem(id=item_id, product=product, quantity=quantity, list_price=list_price, **kw)


def payment(method, amount: int, **kw):
    from atenea.domain.models import PaymentAllocation, PaymentMethod

    return PaymentAllocation(method=PaymentMethod(method), amount=amount, **kw)
