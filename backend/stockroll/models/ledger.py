from __future__ import annotations

from ..extensions import db
from stockroll.time_utils import to_utc_z


class TankTransaction(db.Model):
    """
    Ledger entry for a tank line.

    Append-only: rows are never updated or deleted. Deltas are stored exactly
    as applied, so current = assigned + SUM(changes) for every line.
    """
    __tablename__ = "tank_transactions"
    __table_args__ = (
        db.Index("ix_tank_tx_line_date", "assignment_tank_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    assignment_tank_id = db.Column(db.Integer, db.ForeignKey("assignment_tanks.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    full_tanks_change = db.Column(db.Integer, nullable=False, default=0)
    empty_tanks_change = db.Column(db.Integer, nullable=False, default=0)

    user_id = db.Column(db.Integer, nullable=False)
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False)
    reference_id = db.Column(db.Integer, nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "assignment_tank_id": self.assignment_tank_id,
            "transaction_type": self.transaction_type,
            "full_tanks_change": self.full_tanks_change,
            "empty_tanks_change": self.empty_tanks_change,
            "user_id": self.user_id,
            "transaction_date": to_utc_z(self.transaction_date),
            "reference_id": self.reference_id,
            "notes": self.notes,
        }


class ItemTransaction(db.Model):
    """Ledger entry for an item line. Append-only."""
    __tablename__ = "item_transactions"
    __table_args__ = (
        db.Index("ix_item_tx_line_date", "assignment_item_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    assignment_item_id = db.Column(db.Integer, db.ForeignKey("assignment_items.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    item_change = db.Column(db.Integer, nullable=False, default=0)

    user_id = db.Column(db.Integer, nullable=False)
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False)
    reference_id = db.Column(db.Integer, nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "assignment_item_id": self.assignment_item_id,
            "transaction_type": self.transaction_type,
            "item_change": self.item_change,
            "user_id": self.user_id,
            "transaction_date": to_utc_z(self.transaction_date),
            "reference_id": self.reference_id,
            "notes": self.notes,
        }
