"""Competition registration model.

Confirmed registrations are created only when a payment is materialized.
Bank-transfer checkouts create PENDING registrations that an admin
confirms after verifying the transfer slip.
"""

import uuid

from archalley.extensions import db


class CompetitionRegistration(db.Model):
    __tablename__ = "competition_registrations"

    STATUSES = [
        "PENDING",
        "CONFIRMED",
        "SUBMITTED",
        "UNDER_REVIEW",
        "COMPLETED",
        "CANCELLED",
        "REFUNDED",
    ]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    registration_number = db.Column(
        db.String(20), unique=True, nullable=False
    )  # e.g. "7KX9M2"
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    competition_id = db.Column(
        db.String(36), db.ForeignKey("competitions.id"), nullable=False
    )
    registration_type_id = db.Column(
        db.String(36),
        db.ForeignKey("competition_registration_types.id"),
        nullable=False,
    )
    payment_id = db.Column(
        db.String(36),
        db.ForeignKey("competition_payments.id"),
        nullable=True,
        index=True,
    )
    country = db.Column(db.String(100), nullable=False)
    participant_type = db.Column(db.String(50), nullable=False)
    referral_source = db.Column(db.String(255), nullable=True)
    team_name = db.Column(db.String(255), nullable=True)
    company_name = db.Column(db.String(255), nullable=True)
    business_registration_no = db.Column(db.String(100), nullable=True)
    members = db.Column(db.JSON, nullable=False, default=list)
    status = db.Column(
        db.String(50), default="PENDING", nullable=False
    )  # see STATUSES
    amount_paid = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="LKR")
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="registrations")
    competition = db.relationship("Competition", back_populates="registrations")
    registration_type = db.relationship("CompetitionRegistrationType")
    payment = db.relationship("CompetitionPayment", back_populates="registrations")

    def to_dict(self):
        return {
            "id": self.id,
            "registrationNumber": self.registration_number,
            "competitionId": self.competition_id,
            "competitionTitle": self.competition.title if self.competition else None,
            "registrationType": (
                self.registration_type.name if self.registration_type else None
            ),
            "participantType": self.participant_type,
            "country": self.country,
            "status": self.status,
            "amountPaid": self.amount_paid,
            "currency": self.currency,
            "confirmedAt": (
                self.confirmed_at.isoformat() if self.confirmed_at else None
            ),
        }

    def __repr__(self):
        return f"<CompetitionRegistration {self.registration_number} ({self.status})>"
