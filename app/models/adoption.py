from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, UniqueConstraint

from ..extensions import db

REQUEST_STATUSES = ("pending", "accepted", "rejected", "withdrawn")


def _now():
    return datetime.now(timezone.utc)


class AdoptionRequest(db.Model):
    __tablename__ = "adoption_requests"

    id = db.Column(db.Integer, primary_key=True)

    pet_id = db.Column(
        db.Integer, db.ForeignKey("pets.id", ondelete="CASCADE"),
        nullable=False, index=True
    )
    requester_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True
    )
    # copied from the pet at creation time
    owner_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True
    )

    message = db.Column(db.String(500), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=_now, onupdate=_now)

    __table_args__ = (
        UniqueConstraint("pet_id", "requester_id", name="uq_adoption_pet_requester"),
        CheckConstraint(
            "status IN ('pending','accepted','rejected','withdrawn')",
            name="ck_adoption_status",
        ),
    )

    pet = db.relationship("Pet", backref=db.backref("adoption_requests", lazy="dynamic", passive_deletes=True))
    requester = db.relationship("User", foreign_keys=[requester_id])
    owner = db.relationship("User", foreign_keys=[owner_id])

    def to_dict(self, with_requester=False, with_owner=False) -> dict:
        data = {
            "id": self.id,
            "pet": self.pet.summary() if self.pet else None,
            "requester": self.requester_id,
            "owner": self.owner_id,
            "message": self.message,
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
        if with_requester and self.requester:
            data["requester"] = self.requester.contact_view(with_location=True)
        if with_owner and self.owner:
            data["owner"] = self.owner.contact_view()
        return data
