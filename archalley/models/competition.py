"""Competition reference data.

- Competition: a design competition with a registration window.
- CompetitionRegistrationType: a priced entry category (individual, team,
  student, ...) offered by one competition.

Both are read-only during payment confirmation.
"""

import uuid

from archalley.extensions import db


class Competition(db.Model):
    __tablename__ = "competitions"

    STATUSES = [
        "UPCOMING",
        "REGISTRATION_OPEN",
        "REGISTRATION_CLOSED",
        "IN_PROGRESS",
        "JUDGING",
        "COMPLETED",
        "CANCELLED",
    ]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    slug = db.Column(db.String(255), unique=True, nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    year = db.Column(db.Integer, nullable=False)
    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    end_date = db.Column(db.DateTime(timezone=True), nullable=False)
    registration_deadline = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(
        db.String(50), default="UPCOMING", nullable=False
    )  # see STATUSES
    registration_fee = db.Column(db.Float, nullable=False, default=0)
    max_team_size = db.Column(db.Integer, nullable=False, default=1)
    prizes = db.Column(db.JSON, default=dict)  # {"first": {"amount": ...}, ...}
    guidelines_url = db.Column(db.String(1000), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    registration_types = db.relationship(
        "CompetitionRegistrationType",
        back_populates="competition",
        order_by="CompetitionRegistrationType.display_order",
    )
    registrations = db.relationship(
        "CompetitionRegistration", back_populates="competition", lazy="dynamic"
    )

    def __repr__(self):
        return f"<Competition {self.slug} ({self.status})>"


class CompetitionRegistrationType(db.Model):
    __tablename__ = "competition_registration_types"
    __table_args__ = (
        db.UniqueConstraint("competition_id", "type", name="uq_registration_type_per_competition"),
    )

    TYPES = ["INDIVIDUAL", "TEAM", "COMPANY", "STUDENT", "KIDS"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    competition_id = db.Column(
        db.String(36), db.ForeignKey("competitions.id"), nullable=False
    )
    type = db.Column(db.String(50), nullable=False)  # see TYPES
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    fee = db.Column(db.Float, nullable=False)
    max_members = db.Column(db.Integer, nullable=False, default=1)
    is_active = db.Column(db.Boolean, default=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    competition = db.relationship("Competition", back_populates="registration_types")

    def __repr__(self):
        return f"<CompetitionRegistrationType {self.type} fee={self.fee}>"
