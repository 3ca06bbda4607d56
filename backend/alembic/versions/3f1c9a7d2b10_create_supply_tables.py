"""create supply tables

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-09-28
"""
from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1c9a7d2b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

service_type = sa.Enum("ambulatory", "hospital", name="service_type")
request_status = sa.Enum("pending", "approved", "rejected", name="request_status")


def upgrade() -> None:
    op.create_table(
        "labs",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
    )
    op.create_table(
        "lots",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("received_date", sa.Date(), nullable=False),
        sa.Column("expiration_date", sa.Date(), nullable=False),
    )
    op.create_table(
        "items",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("presentation", sa.String(32), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lot_id", sa.String(64), sa.ForeignKey("lots.id", ondelete="RESTRICT")),
        sa.Column("lab_id", sa.BigInteger(), sa.ForeignKey("labs.id", ondelete="RESTRICT")),
    )
    op.create_index("ix_items_name", "items", ["name"])

    op.create_table(
        "patients",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("national_id", sa.String(18), nullable=False, unique=True),
        sa.Column("first_name", sa.String(120), nullable=False),
        sa.Column("paternal_surname", sa.String(120)),
        sa.Column("maternal_surname", sa.String(120)),
        sa.Column("gender", sa.String(16)),
        sa.Column("age", sa.Integer()),
        sa.Column("birth_date", sa.Date()),
        sa.Column("address", sa.Text()),
    )
    op.create_table(
        "services",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("type", service_type, nullable=False),
        sa.Column("sub_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.UniqueConstraint("type", "sub_id", name="uq_service_type_sub_id"),
    )
    op.create_table(
        "supply_requests",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("patient_id", sa.BigInteger(), sa.ForeignKey("patients.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("service_id", sa.BigInteger(), sa.ForeignKey("services.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("requester_name", sa.String(200), nullable=False),
        sa.Column("diagnosis", sa.Text()),
        sa.Column("priority", sa.String(32)),
        sa.Column("status", request_status, nullable=False, server_default="pending"),
        sa.Column("justification", sa.String(32), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_supply_requests_created_at", "supply_requests", ["created_at"])

    op.create_table(
        "supply_request_lines",
        sa.Column(
            "request_id",
            sa.BigInteger(),
            sa.ForeignKey("supply_requests.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("item_id", sa.String(64), sa.ForeignKey("items.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("presentation", sa.String(32)),
        sa.Column("quantity_requested", sa.Integer(), nullable=False),
        sa.Column("quantity_supplied", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("quantity_requested > 0", name="ck_request_line_requested_pos"),
        sa.CheckConstraint("quantity_supplied >= 0", name="ck_request_line_supplied_nonneg"),
    )


def downgrade() -> None:
    op.drop_table("supply_request_lines")
    op.drop_index("ix_supply_requests_created_at", table_name="supply_requests")
    op.drop_table("supply_requests")
    op.drop_table("services")
    op.drop_table("patients")
    op.drop_index("ix_items_name", table_name="items")
    op.drop_table("items")
    op.drop_table("lots")
    op.drop_table("labs")
    request_status.drop(op.get_bind(), checkfirst=True)
    service_type.drop(op.get_bind(), checkfirst=True)
