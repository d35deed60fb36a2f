"""Store catalog, inventory assignments, status history and quantity ledger

Revision ID: 20261019_assignment_ledger
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_assignment_ledger"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]


def upgrade():
    # Catalog side
    op.create_table(
        "stores",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_stores_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stores", schema=None) as batch_op:
        batch_op.create_index("ix_stores_code", ["code"], unique=False)

    op.create_table(
        "tank_types",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("weight_kg", sa.Integer(), nullable=True),
        sa.Column("purchase_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("sell_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("purchase_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("sell_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "store_tank_catalog",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("tank_type_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["tank_type_id"], ["tank_types.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "tank_type_id", name="uq_store_tank_catalog"),
    )
    with op.batch_alter_table("store_tank_catalog", schema=None) as batch_op:
        batch_op.create_index("ix_store_tank_catalog_store_id", ["store_id"], unique=False)

    op.create_table(
        "store_item_catalog",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("inventory_item_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["inventory_item_id"], ["inventory_items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "inventory_item_id", name="uq_store_item_catalog"),
    )
    with op.batch_alter_table("store_item_catalog", schema=None) as batch_op:
        batch_op.create_index("ix_store_item_catalog_store_id", ["store_id"], unique=False)

    op.create_table(
        "store_assignments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("operator_id", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "operator_id", name="uq_store_assignments_store_operator"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("store_assignments", schema=None) as batch_op:
        batch_op.create_index("ix_store_assignments_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_store_assignments_operator_id", ["operator_id"], unique=False)

    # Assignment side
    op.create_table(
        "inventory_assignments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_assignment_id", sa.Integer(), nullable=False),
        sa.Column("assignment_date", sa.Date(), nullable=False),
        sa.Column("assigned_by", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="CREATED"),
        sa.Column("auto_assignment", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["store_assignment_id"], ["store_assignments.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_assignment_id", "assignment_date", name="uq_inventory_assignments_pairing_date"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_assignments", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_assignments_store_assignment_id", ["store_assignment_id"], unique=False)
        batch_op.create_index("ix_inventory_assignments_assignment_date", ["assignment_date"], unique=False)
        batch_op.create_index("ix_inventory_assignments_status", ["status"], unique=False)
        batch_op.create_index("ix_inventory_assignments_pairing_status", ["store_assignment_id", "status"], unique=False)

    op.create_table(
        "assignment_tanks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("inventory_assignment_id", sa.Integer(), nullable=False),
        sa.Column("tank_type_id", sa.Integer(), nullable=False),
        sa.Column("purchase_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("sell_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("assigned_full_tanks", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("assigned_empty_tanks", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("current_full_tanks", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("current_empty_tanks", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("current_full_tanks >= 0", name="ck_assignment_tanks_current_full_nonneg"),
        sa.CheckConstraint("current_empty_tanks >= 0", name="ck_assignment_tanks_current_empty_nonneg"),
        sa.ForeignKeyConstraint(["inventory_assignment_id"], ["inventory_assignments.id"]),
        sa.ForeignKeyConstraint(["tank_type_id"], ["tank_types.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("inventory_assignment_id", "tank_type_id", name="uq_assignment_tanks_assignment_type"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("assignment_tanks", schema=None) as batch_op:
        batch_op.create_index("ix_assignment_tanks_inventory_assignment_id", ["inventory_assignment_id"], unique=False)

    op.create_table(
        "assignment_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("inventory_assignment_id", sa.Integer(), nullable=False),
        sa.Column("inventory_item_id", sa.Integer(), nullable=False),
        sa.Column("purchase_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("sell_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("assigned_items", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("current_items", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("current_items >= 0", name="ck_assignment_items_current_nonneg"),
        sa.ForeignKeyConstraint(["inventory_assignment_id"], ["inventory_assignments.id"]),
        sa.ForeignKeyConstraint(["inventory_item_id"], ["inventory_items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("inventory_assignment_id", "inventory_item_id", name="uq_assignment_items_assignment_item"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("assignment_items", schema=None) as batch_op:
        batch_op.create_index("ix_assignment_items_inventory_assignment_id", ["inventory_assignment_id"], unique=False)

    op.create_table(
        "inventory_status_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("inventory_assignment_id", sa.Integer(), nullable=False),
        sa.Column("from_status", sa.String(16), nullable=True),
        sa.Column("to_status", sa.String(16), nullable=False),
        sa.Column("changed_by", sa.Integer(), nullable=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["inventory_assignment_id"], ["inventory_assignments.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_status_history", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_status_history_inventory_assignment_id", ["inventory_assignment_id"], unique=False)
        batch_op.create_index("ix_inventory_status_history_changed_by", ["changed_by"], unique=False)
        batch_op.create_index("ix_inventory_status_history_changed_at", ["changed_at"], unique=False)
        batch_op.create_index("ix_status_history_assignment_changed", ["inventory_assignment_id", "changed_at"], unique=False)

    op.create_table(
        "current_assignment_pointers",
        sa.Column("store_assignment_id", sa.Integer(), nullable=False),
        sa.Column("inventory_assignment_id", sa.Integer(), nullable=False),
        sa.Column("set_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("set_by", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["store_assignment_id"], ["store_assignments.id"]),
        sa.ForeignKeyConstraint(["inventory_assignment_id"], ["inventory_assignments.id"]),
        sa.PrimaryKeyConstraint("store_assignment_id"),
    )

    # Ledger side (append-only)
    op.create_table(
        "tank_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("assignment_tank_id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(16), nullable=False),
        sa.Column("full_tanks_change", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("empty_tanks_change", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["assignment_tank_id"], ["assignment_tanks.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("tank_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_tank_transactions_assignment_tank_id", ["assignment_tank_id"], unique=False)
        batch_op.create_index("ix_tank_transactions_transaction_type", ["transaction_type"], unique=False)
        batch_op.create_index("ix_tank_transactions_reference_id", ["reference_id"], unique=False)
        batch_op.create_index("ix_tank_tx_line_date", ["assignment_tank_id", "transaction_date"], unique=False)

    op.create_table(
        "item_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("assignment_item_id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(16), nullable=False),
        sa.Column("item_change", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["assignment_item_id"], ["assignment_items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("item_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_item_transactions_assignment_item_id", ["assignment_item_id"], unique=False)
        batch_op.create_index("ix_item_transactions_transaction_type", ["transaction_type"], unique=False)
        batch_op.create_index("ix_item_transactions_reference_id", ["reference_id"], unique=False)
        batch_op.create_index("ix_item_tx_line_date", ["assignment_item_id", "transaction_date"], unique=False)


def downgrade():
    for table in (
        "item_transactions",
        "tank_transactions",
        "current_assignment_pointers",
        "inventory_status_history",
        "assignment_items",
        "assignment_tanks",
        "inventory_assignments",
        "store_assignments",
        "store_item_catalog",
        "store_tank_catalog",
        "inventory_items",
        "tank_types",
        "stores",
    ):
        op.drop_table(table)
