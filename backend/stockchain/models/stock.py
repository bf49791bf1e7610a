from __future__ import annotations

from ..extensions import db
from ..chains import get_chain
from ..money import money_to_json
from ..time_utils import to_utc_z


ENTRY_STATUS_AVAILABLE = "available"
ENTRY_STATUS_DEPLETED = "depleted"

SOURCE_REQUEST_CLAIM = "request-claim"
SOURCE_TRANSFER = "transfer"
SOURCE_DISPATCH = "dispatch"
ENTRY_SOURCES = (SOURCE_REQUEST_CLAIM, SOURCE_TRANSFER, SOURCE_DISPATCH)


class StockEntry(db.Model):
    """
    One received batch of a product held by one owner in one chain.

    INVARIANT: available_quantity + used_quantity == quantity, always.
    quantity is fixed at creation; consumption only moves units from
    available to used. FIFO order is (received_at, id).
    """
    __tablename__ = "stock_entries"
    __table_args__ = (
        db.Index("ix_stock_entries_owner_product_received", "chain", "owner_id", "product_id", "received_at"),
        db.UniqueConstraint("idempotency_key", name="uq_stock_entries_idempotency_key"),
        db.CheckConstraint("available_quantity >= 0", name="ck_stock_entries_available_nonneg"),
        db.CheckConstraint("available_quantity <= quantity", name="ck_stock_entries_available_le_qty"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    chain = db.Column(db.String(32), nullable=False, index=True)
    owner_id = db.Column(db.String(128), nullable=False, index=True)
    owner_name = db.Column(db.String(255), nullable=True)
    owner_role = db.Column(db.String(64), nullable=True)
    distributor_id = db.Column(db.String(128), nullable=True)
    distributor_name = db.Column(db.String(255), nullable=True)

    product_id = db.Column(db.String(128), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    available_quantity = db.Column(db.Integer, nullable=False)
    used_quantity = db.Column(db.Integer, nullable=False, default=0)

    # Pricing snapshot; only populated when the chain tracks pricing
    unit_price = db.Column(db.Numeric(12, 2), nullable=True)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=True)
    final_price = db.Column(db.Numeric(12, 2), nullable=True)
    total_value = db.Column(db.Numeric(14, 2), nullable=True)

    received_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    request_id = db.Column(db.String(64), nullable=True, index=True)
    source = db.Column(db.String(32), nullable=False)
    location = db.Column(db.String(128), nullable=True)
    batch_number = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # claim:<request_id>:<product_id> for claimed batches; NULL otherwise
    idempotency_key = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_updated = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def status(self) -> str:
        return ENTRY_STATUS_DEPLETED if self.available_quantity == 0 else ENTRY_STATUS_AVAILABLE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "path": get_chain(self.chain).entry_path(self.owner_id, self.id),
            "chain": self.chain,
            "owner_id": self.owner_id,
            "owner_name": self.owner_name,
            "owner_role": self.owner_role,
            "distributor_id": self.distributor_id,
            "distributor_name": self.distributor_name,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "available_quantity": self.available_quantity,
            "used_quantity": self.used_quantity,
            "unit_price": money_to_json(self.unit_price),
            "discount_percent": money_to_json(self.discount_percent),
            "final_price": money_to_json(self.final_price),
            "total_value": money_to_json(self.total_value),
            "received_at": to_utc_z(self.received_at),
            "request_id": self.request_id,
            "source": self.source,
            "status": self.status,
            "location": self.location,
            "batch_number": self.batch_number,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "notes": self.notes,
            "last_updated": to_utc_z(self.last_updated),
            "version_id": self.version_id,
        }


class StockSummary(db.Model):
    """
    Cached per-(chain, owner, product) aggregate over StockEntry rows.

    Not a source of truth: totals must equal the sums over the owner's
    entries for the product. summary_service.recalculate rebuilds it when
    incremental updates have drifted.
    """
    __tablename__ = "stock_summaries"
    __table_args__ = (
        db.UniqueConstraint("chain", "owner_id", "product_id", name="uq_stock_summaries_owner_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    chain = db.Column(db.String(32), nullable=False, index=True)
    owner_id = db.Column(db.String(128), nullable=False, index=True)
    product_id = db.Column(db.String(128), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)

    total_quantity = db.Column(db.Integer, nullable=False, default=0)
    available_quantity = db.Column(db.Integer, nullable=False, default=0)
    used_quantity = db.Column(db.Integer, nullable=False, default=0)
    entry_count = db.Column(db.Integer, nullable=False, default=0)

    total_value = db.Column(db.Numeric(14, 2), nullable=True)
    average_unit_price = db.Column(db.Numeric(12, 2), nullable=True)

    first_received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_updated = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "path": get_chain(self.chain).summary_path(self.owner_id, self.product_id),
            "chain": self.chain,
            "owner_id": self.owner_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "total_quantity": self.total_quantity,
            "available_quantity": self.available_quantity,
            "used_quantity": self.used_quantity,
            "entry_count": self.entry_count,
            "total_value": money_to_json(self.total_value),
            "average_unit_price": money_to_json(self.average_unit_price),
            "first_received_at": to_utc_z(self.first_received_at),
            "last_updated": to_utc_z(self.last_updated),
        }
