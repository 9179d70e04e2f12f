"""Competition payment models.

- CompetitionPayment: one row per checkout attempt, correlated with the
  gateway by order_id. Mutated by the notify webhook, the return-redirect
  fallback, and admin payment tools.
- PaymentMaterialization: marker row claimed when a payment's cart is
  turned into registrations. The unique payment_id guarantees a payment is
  materialized at most once, even when the webhook and the return redirect
  race each other.
"""

import uuid

from archalley.extensions import db


class CompetitionPayment(db.Model):
    __tablename__ = "competition_payments"

    STATUSES = [
        "PENDING",
        "PROCESSING",
        "COMPLETED",
        "FAILED",
        "CANCELLED",
        "REFUNDED",
    ]

    # Payment methods that never go through the gateway
    BANK_TRANSFER = "BANK_TRANSFER"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    order_id = db.Column(
        db.String(100), unique=True, nullable=False
    )  # e.g. "ORDER-AC2025-00123"
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    competition_id = db.Column(
        db.String(36), db.ForeignKey("competitions.id"), nullable=True
    )  # primary competition of the cart
    amount = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="LKR")
    merchant_id = db.Column(db.String(100), nullable=True)
    status = db.Column(
        db.String(50), default="PENDING", nullable=False, index=True
    )  # see STATUSES
    payment_method = db.Column(
        db.String(50), nullable=True
    )  # None until the gateway reports it, "VISA", "MASTER", ..., or BANK_TRANSFER

    # --- Gateway response fields ---
    gateway_payment_id = db.Column(db.String(100), nullable=True)  # PayHere payment_id
    status_code = db.Column(db.String(10), nullable=True)
    md5sig = db.Column(db.String(64), nullable=True)
    card_holder_name = db.Column(db.String(255), nullable=True)
    card_no = db.Column(db.String(32), nullable=True)  # masked, e.g. "************1292"
    response_data = db.Column(db.JSON, nullable=True)  # raw gateway payload for audit
    error_message = db.Column(db.Text, nullable=True)

    # --- Checkout snapshot ---
    items = db.Column(db.JSON, nullable=False, default=list)
    customer_details = db.Column(db.JSON, nullable=True)
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # {"cartId": str, "itemIds": [str], ...}

    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="payments")
    competition = db.relationship("Competition")
    registrations = db.relationship(
        "CompetitionRegistration", back_populates="payment", lazy="dynamic"
    )
    audit_events = db.relationship(
        "AuditEvent", back_populates="payment", lazy="dynamic"
    )

    @property
    def is_gateway_payment(self):
        """True for card checkouts that complete through the PayHere IPN."""
        return self.payment_method != self.BANK_TRANSFER

    def __repr__(self):
        return f"<CompetitionPayment {self.order_id} ({self.status})>"


class PaymentMaterialization(db.Model):
    __tablename__ = "payment_materializations"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    payment_id = db.Column(
        db.String(36),
        db.ForeignKey("competition_payments.id"),
        unique=True,
        nullable=False,
    )
    source = db.Column(db.String(50), nullable=False)  # notify | return_fallback
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<PaymentMaterialization payment={self.payment_id} ({self.source})>"
