"""add_update_user_plan_function

Revision ID: 9d3e5a7c1b22
Revises: 4b1c9e2f7a10
Create Date: 2026-10-17 09:40:03.551920

Privileged fallback path for entitlement writes blocked by row-level rules.
PostgreSQL only; other databases use a raw UPDATE instead.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '9d3e5a7c1b22'
down_revision: Union[str, None] = '4b1c9e2f7a10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create update_user_plan(user_id, plan_id, limit)."""
    if op.get_bind().dialect.name != 'postgresql':
        return

    op.execute("DROP FUNCTION IF EXISTS public.update_user_plan(integer, text, integer)")
    op.execute("""
        CREATE OR REPLACE FUNCTION public.update_user_plan(
          user_id_param INTEGER,
          plan_id_param TEXT,
          limit_param INTEGER
        )
        RETURNS BOOLEAN AS $$
        DECLARE
          row_count INTEGER;
        BEGIN
          UPDATE public.users
          SET
            current_plan_id = plan_id_param,
            generation_limit = limit_param,
            generations_used = 0,
            updated_at = NOW()
          WHERE id = user_id_param;

          GET DIAGNOSTICS row_count = ROW_COUNT;
          RETURN row_count > 0;
        END;
        $$ LANGUAGE plpgsql SECURITY DEFINER
    """)


def downgrade() -> None:
    """Drop update_user_plan."""
    if op.get_bind().dialect.name != 'postgresql':
        return
    op.execute("DROP FUNCTION IF EXISTS public.update_user_plan(integer, text, integer)")
