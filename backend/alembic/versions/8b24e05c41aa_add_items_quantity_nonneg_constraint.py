"""add items quantity nonneg constraint

Revision ID: 8b24e05c41aa
Revises: 3f1c9a7d2b10
Create Date: 2026-10-02
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8b24e05c41aa"
down_revision: Union[str, Sequence[str], None] = "3f1c9a7d2b10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TABLE_NAME = "items"
CK_QUANTITY = "ck_item_quantity_nonneg"


def upgrade() -> None:
    # données importées avant la contrainte : on remet à 0 plutôt que d'échouer
    op.execute(
        f"""
        UPDATE {TABLE_NAME}
        SET quantity = 0
        WHERE quantity < 0;
        """
    )

    # Idempotent Postgres
    op.execute(
        f"""
        DO $$
        BEGIN
            IF NOT EXISTS (
                SELECT 1
                FROM pg_constraint c
                JOIN pg_class t ON t.oid = c.conrelid
                WHERE t.relname = '{TABLE_NAME}'
                  AND c.conname = '{CK_QUANTITY}'
            ) THEN
                ALTER TABLE {TABLE_NAME}
                ADD CONSTRAINT {CK_QUANTITY}
                CHECK (quantity >= 0);
            END IF;
        END $$;
        """
    )


def downgrade() -> None:
    op.execute(f"ALTER TABLE {TABLE_NAME} DROP CONSTRAINT IF EXISTS {CK_QUANTITY};")
