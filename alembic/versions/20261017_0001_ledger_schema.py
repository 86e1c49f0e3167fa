"""ledger schema

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261017_0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

transaction_type = sa.Enum("SALE", "PURCHASE", name="transactiontype")
currency = sa.Enum("LRD", "USD", name="currency")


def upgrade() -> None:
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store", sa.String(length=120), nullable=False),
        sa.Column("item", sa.String(length=160), nullable=False),
        sa.Column("pieces", sa.Integer(), nullable=True),
        sa.Column("price_lrd", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("price_usd", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("total_lrd", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("total_usd", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("image", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_products_id"), "products", ["id"], unique=False)
    op.create_index(op.f("ix_products_store"), "products", ["store"], unique=False)
    op.create_index(op.f("ix_products_item"), "products", ["item"], unique=False)
    op.create_index(op.f("ix_products_created_at"), "products", ["created_at"], unique=False)

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store", sa.String(length=120), nullable=False),
        sa.Column("type", transaction_type, nullable=False),
        sa.Column("currency", currency, nullable=False),
        sa.Column("total_lrd", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("total_usd", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("reversed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_transactions_id"), "transactions", ["id"], unique=False)
    op.create_index(op.f("ix_transactions_store"), "transactions", ["store"], unique=False)
    op.create_index(op.f("ix_transactions_type"), "transactions", ["type"], unique=False)
    op.create_index(op.f("ix_transactions_created_at"), "transactions", ["created_at"], unique=False)
    op.create_index(op.f("ix_transactions_reversed_at"), "transactions", ["reversed_at"], unique=False)

    op.create_table(
        "transaction_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transaction_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("price_at_sale_lrd", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("price_at_sale_usd", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.ForeignKeyConstraint(["transaction_id"], ["transactions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_transaction_lines_id"), "transaction_lines", ["id"], unique=False)
    op.create_index(
        op.f("ix_transaction_lines_transaction_id"),
        "transaction_lines",
        ["transaction_id"],
        unique=False,
    )
    op.create_index(op.f("ix_transaction_lines_product_id"), "transaction_lines", ["product_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_transaction_lines_product_id"), table_name="transaction_lines")
    op.drop_index(op.f("ix_transaction_lines_transaction_id"), table_name="transaction_lines")
    op.drop_index(op.f("ix_transaction_lines_id"), table_name="transaction_lines")
    op.drop_table("transaction_lines")

    op.drop_index(op.f("ix_transactions_reversed_at"), table_name="transactions")
    op.drop_index(op.f("ix_transactions_created_at"), table_name="transactions")
    op.drop_index(op.f("ix_transactions_type"), table_name="transactions")
    op.drop_index(op.f("ix_transactions_store"), table_name="transactions")
    op.drop_index(op.f("ix_transactions_id"), table_name="transactions")
    op.drop_table("transactions")

    op.drop_index(op.f("ix_products_created_at"), table_name="products")
    op.drop_index(op.f("ix_products_item"), table_name="products")
    op.drop_index(op.f("ix_products_store"), table_name="products")
    op.drop_index(op.f("ix_products_id"), table_name="products")
    op.drop_table("products")

    currency.drop(op.get_bind(), checkfirst=True)
    transaction_type.drop(op.get_bind(), checkfirst=True)
