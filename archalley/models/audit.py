"""Audit event model.

Logs payment state changes, registration materialization and admin
payment actions for debugging and reconciliation.
"""

import uuid

from archalley.extensions import db


class AuditEvent(db.Model):
    __tablename__ = "audit_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    actor_user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=True
    )  # None for gateway / system events
    payment_id = db.Column(
        db.String(36), db.ForeignKey("competition_payments.id"), nullable=True
    )
    action = db.Column(db.String(255), nullable=False)  # e.g. "payment.completed"
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # extra context, named metadata_ to avoid the declarative attribute clash
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    actor = db.relationship("User", back_populates="audit_events")
    payment = db.relationship("CompetitionPayment", back_populates="audit_events")

    def __repr__(self):
        return f"<AuditEvent {self.action}>"
