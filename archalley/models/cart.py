"""Registration cart models.

- RegistrationCart: one in-progress checkout session per user.
- RegistrationCartItem: one competition entry (registration type +
  participants) waiting to be paid for.

A user should hold at most one ACTIVE cart; this is not enforced by a
constraint (see cart_service.get_active_cart).
"""

import uuid
from datetime import datetime, timezone

from archalley.extensions import db


class RegistrationCart(db.Model):
    __tablename__ = "registration_carts"

    STATUSES = ["ACTIVE", "COMPLETED", "EXPIRED", "ABANDONED"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    status = db.Column(
        db.String(50), default="ACTIVE", nullable=False, index=True
    )  # ACTIVE | COMPLETED | EXPIRED | ABANDONED
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="carts")
    items = db.relationship(
        "RegistrationCartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="RegistrationCartItem.created_at",
    )

    @property
    def total(self):
        return sum(item.subtotal for item in self.items)

    def __repr__(self):
        return f"<RegistrationCart user={self.user_id} ({self.status})>"


class RegistrationCartItem(db.Model):
    __tablename__ = "registration_cart_items"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    cart_id = db.Column(
        db.String(36), db.ForeignKey("registration_carts.id"), nullable=False, index=True
    )
    competition_id = db.Column(
        db.String(36), db.ForeignKey("competitions.id"), nullable=False
    )
    registration_type_id = db.Column(
        db.String(36),
        db.ForeignKey("competition_registration_types.id"),
        nullable=False,
    )
    country = db.Column(db.String(100), nullable=False)
    participant_type = db.Column(db.String(50), nullable=False)  # INDIVIDUAL | TEAM | ...
    referral_source = db.Column(db.String(255), nullable=True)
    team_name = db.Column(db.String(255), nullable=True)
    company_name = db.Column(db.String(255), nullable=True)
    business_registration_no = db.Column(db.String(100), nullable=True)
    members = db.Column(db.JSON, nullable=False, default=list)
    unit_price = db.Column(db.Float, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    subtotal = db.Column(db.Float, nullable=False)
    agreed_to_terms = db.Column(db.Boolean, default=False)
    agreed_to_website_terms = db.Column(db.Boolean, default=False)
    agreed_to_privacy_policy = db.Column(db.Boolean, default=False)
    agreed_to_refund_policy = db.Column(db.Boolean, default=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    # --- Relationships ---
    cart = db.relationship("RegistrationCart", back_populates="items")
    competition = db.relationship("Competition")
    registration_type = db.relationship("CompetitionRegistrationType")

    def to_dict(self):
        return {
            "id": self.id,
            "competitionId": self.competition_id,
            "competitionTitle": self.competition.title if self.competition else None,
            "registrationTypeId": self.registration_type_id,
            "registrationType": (
                self.registration_type.name if self.registration_type else None
            ),
            "country": self.country,
            "participantType": self.participant_type,
            "members": self.members or [],
            "unitPrice": self.unit_price,
            "subtotal": self.subtotal,
        }

    def __repr__(self):
        return f"<RegistrationCartItem cart={self.cart_id} {self.participant_type}>"
