from datetime import datetime, timezone
from sqlalchemy import CheckConstraint
from ..extensions import db

SPECIES = ("dog", "cat", "bird", "rabbit", "hamster", "fish", "turtle", "other")
AGE_UNITS = ("days", "weeks", "months", "years")
GENDERS = ("male", "female", "unknown")
SIZES = ("small", "medium", "large", "extra-large")
STATUSES = ("available", "pending", "adopted")
CONTACT_PREFERENCES = ("email", "phone", "both")

MAX_IMAGES = 5


def _now():
    return datetime.now(timezone.utc)


def _in(column: str, values) -> str:
    quoted = ",".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


class Pet(db.Model):
    """A listing of a pet available for adoption."""

    __tablename__ = "pets"

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    name = db.Column(db.String(50), nullable=False)
    species = db.Column(db.String(20), nullable=False, index=True)
    breed = db.Column(db.String(120), nullable=False, default="Mixed/Unknown")
    age_value = db.Column(db.Float, nullable=False)
    age_unit = db.Column(db.String(10), nullable=False, default="months")
    gender = db.Column(db.String(10), nullable=False, default="unknown")
    size = db.Column(db.String(20), nullable=False, default="medium")
    color = db.Column(db.String(120), nullable=True)
    description = db.Column(db.String(1000), nullable=False)

    vaccinated = db.Column(db.Boolean, nullable=False, default=False)
    neutered = db.Column(db.Boolean, nullable=False, default=False)
    health_conditions = db.Column(db.Text, nullable=True)

    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)

    images = db.Column(db.JSON, nullable=False, default=list)

    adoption_fee = db.Column(db.Float, nullable=False, default=0)
    adoption_fee_reason = db.Column(db.String(500), nullable=True)

    status = db.Column(db.String(20), nullable=False, default="available", index=True)
    contact_preference = db.Column(db.String(10), nullable=False, default="both")

    created_at = db.Column(db.DateTime, nullable=False, default=_now, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=_now, onupdate=_now)

    owner = db.relationship("User", backref=db.backref("pets", lazy="dynamic"))

    __table_args__ = (
        CheckConstraint(_in("species", SPECIES), name="ck_pet_species"),
        CheckConstraint(_in("age_unit", AGE_UNITS), name="ck_pet_age_unit"),
        CheckConstraint(_in("gender", GENDERS), name="ck_pet_gender"),
        CheckConstraint(_in("size", SIZES), name="ck_pet_size"),
        CheckConstraint(_in("status", STATUSES), name="ck_pet_status"),
        CheckConstraint(
            _in("contact_preference", CONTACT_PREFERENCES), name="ck_pet_contact"
        ),
        CheckConstraint("adoption_fee >= 0", name="ck_pet_fee_non_negative"),
        CheckConstraint(
            "latitude IS NULL OR (latitude >= -90 AND latitude <= 90)",
            name="ck_pet_latitude",
        ),
        CheckConstraint(
            "longitude IS NULL OR (longitude >= -180 AND longitude <= 180)",
            name="ck_pet_longitude",
        ),
    )

    def location_dict(self):
        if self.latitude is None or self.longitude is None:
            return None
        return {
            "type": "Point",
            "coordinates": [self.longitude, self.latitude],
            "address": self.address,
            "city": self.city,
        }

    def summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "species": self.species,
            "breed": self.breed,
            "images": list(self.images or []),
            "status": self.status,
        }

    def to_dict(self, owner_view=None) -> dict:
        """Public JSON shape; ``owner_view`` replaces the bare owner id."""
        return {
            "id": self.id,
            "name": self.name,
            "species": self.species,
            "breed": self.breed,
            "age": {"value": self.age_value, "unit": self.age_unit},
            "gender": self.gender,
            "size": self.size,
            "color": self.color,
            "description": self.description,
            "healthInfo": {
                "vaccinated": self.vaccinated,
                "neutered": self.neutered,
                "healthConditions": self.health_conditions,
            },
            "images": list(self.images or []),
            "location": self.location_dict(),
            "adoptionFee": self.adoption_fee,
            "adoptionFeeReason": self.adoption_fee_reason,
            "status": self.status,
            "owner": owner_view if owner_view is not None else self.owner_id,
            "contactPreference": self.contact_preference,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
