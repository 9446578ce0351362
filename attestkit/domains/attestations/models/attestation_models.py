"""Attestation order models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column, relationship

from attestkit.extensions import db

STATUS_PENDING = "pending"
STATUS_ADDRESSED = "addressed"
STATUS_ATTESTED = "attested"
ORDER_STATUSES = (STATUS_PENDING, STATUS_ADDRESSED, STATUS_ATTESTED)


class AttestationOrder(db.Model):
    __tablename__ = "attestation_order"
    __table_args__ = (
        db.UniqueConstraint("identity_key", name="uq_attestation_order_identity_key"),
        db.Index("ix_attestation_order_fingerprint", "data_fingerprint", "status"),
        db.Index("ix_attestation_order_provider_status", "provider", "status"),
        db.Index("ix_attestation_order_wallet_address", "wallet_address"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    provider: Mapped[str | None] = mapped_column(db.String(64))
    data_fingerprint: Mapped[str] = mapped_column(db.String(64), nullable=False)
    # Set while the order is open, NULL once attested.
    identity_key: Mapped[str | None] = mapped_column(db.String(64))
    wallet_address: Mapped[str | None] = mapped_column(db.String(64))
    device_address: Mapped[str | None] = mapped_column(db.String(128))
    unit: Mapped[str | None] = mapped_column(db.String(64))
    status: Mapped[str] = mapped_column(db.String(16), nullable=False, default=STATUS_PENDING)
    issuance_lease_id: Mapped[str | None] = mapped_column(db.String(32))
    issuance_lease_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)
    attested_at: Mapped[datetime | None] = mapped_column(nullable=True)

    attributes: Mapped[list["AttestationOrderAttribute"]] = relationship(
        "AttestationOrderAttribute",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def data(self) -> dict[str, str]:
        return {attr.key: attr.value for attr in self.attributes}

    @property
    def is_attested(self) -> bool:
        return self.status == STATUS_ATTESTED


class AttestationOrderAttribute(db.Model):
    __tablename__ = "attestation_order_attribute"
    __table_args__ = (
        db.UniqueConstraint("order_id", "key", name="uq_attestation_order_attribute_key"),
        db.Index("ix_attestation_order_attribute_key_value", "key", "value"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(
        db.ForeignKey("attestation_order.id", ondelete="CASCADE"), index=True, nullable=False
    )
    key: Mapped[str] = mapped_column(db.String(64), nullable=False)
    value: Mapped[str] = mapped_column(db.String(255), nullable=False)

    order: Mapped[AttestationOrder] = relationship("AttestationOrder", back_populates="attributes")
