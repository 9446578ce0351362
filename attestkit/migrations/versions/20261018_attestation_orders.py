"""attestation orders, attributes and platform outbox

Revision ID: 20261018_attestation_orders
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "20261018_attestation_orders"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "attestation_order",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("provider", sa.String(length=64)),
        sa.Column("data_fingerprint", sa.String(length=64), nullable=False),
        sa.Column("identity_key", sa.String(length=64)),
        sa.Column("wallet_address", sa.String(length=64)),
        sa.Column("device_address", sa.String(length=128)),
        sa.Column("unit", sa.String(length=64)),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("issuance_lease_id", sa.String(length=32)),
        sa.Column("issuance_lease_expires_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("attested_at", sa.DateTime()),
        sa.UniqueConstraint("identity_key", name="uq_attestation_order_identity_key"),
    )
    op.create_index(
        "ix_attestation_order_fingerprint",
        "attestation_order",
        ["data_fingerprint", "status"],
    )
    op.create_index(
        "ix_attestation_order_provider_status",
        "attestation_order",
        ["provider", "status"],
    )
    op.create_index(
        "ix_attestation_order_wallet_address",
        "attestation_order",
        ["wallet_address"],
    )

    op.create_table(
        "attestation_order_attribute",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "order_id",
            sa.Integer(),
            sa.ForeignKey("attestation_order.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("key", sa.String(length=64), nullable=False),
        sa.Column("value", sa.String(length=255), nullable=False),
        sa.UniqueConstraint("order_id", "key", name="uq_attestation_order_attribute_key"),
    )
    op.create_index(
        "ix_attestation_order_attribute_order_id",
        "attestation_order_attribute",
        ["order_id"],
    )
    op.create_index(
        "ix_attestation_order_attribute_key_value",
        "attestation_order_attribute",
        ["key", "value"],
    )

    op.create_table(
        "platform_outbox",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("aggregate_id", sa.Integer()),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("available_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("last_error", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_platform_outbox_event_type", "platform_outbox", ["event_type"])
    op.create_index(
        "ix_platform_outbox_status_available_at",
        "platform_outbox",
        ["status", "available_at"],
    )
    op.create_index(
        "ix_platform_outbox_aggregate",
        "platform_outbox",
        ["aggregate_id", "created_at"],
    )


def downgrade():
    op.drop_index("ix_platform_outbox_aggregate", table_name="platform_outbox")
    op.drop_index("ix_platform_outbox_status_available_at", table_name="platform_outbox")
    op.drop_index("ix_platform_outbox_event_type", table_name="platform_outbox")
    op.drop_table("platform_outbox")
    op.drop_index("ix_attestation_order_attribute_key_value", table_name="attestation_order_attribute")
    op.drop_index("ix_attestation_order_attribute_order_id", table_name="attestation_order_attribute")
    op.drop_table("attestation_order_attribute")
    op.drop_index("ix_attestation_order_wallet_address", table_name="attestation_order")
    op.drop_index("ix_attestation_order_provider_status", table_name="attestation_order")
    op.drop_index("ix_attestation_order_fingerprint", table_name="attestation_order")
    op.drop_table("attestation_order")
