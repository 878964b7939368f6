from wtforms import (BooleanField, FieldList, FloatField, Form, FormField,
                     SelectField, StringField, TextAreaField)
from wtforms.validators import (DataRequired, InputRequired, Length,
                                NumberRange, Optional, ValidationError)

from ..forms import ApiForm
from ..models.pet import (AGE_UNITS, CONTACT_PREFERENCES, GENDERS, MAX_IMAGES,
                          SIZES, SPECIES, STATUSES)


def _lower(value):
    return value.strip().lower() if isinstance(value, str) else value


def _strip(value):
    return value.strip() if isinstance(value, str) else value


class AgeForm(Form):
    value = FloatField("Age", validators=[InputRequired(message="Age is required"), NumberRange(min=0)])
    unit = SelectField("Unit", choices=AGE_UNITS, default="months", filters=[_lower])


class HealthForm(Form):
    vaccinated = BooleanField("Vaccinated")
    neutered = BooleanField("Neutered")
    healthConditions = StringField("Health conditions", filters=[_strip])


class LocationForm(Form):
    latitude = FloatField(
        "Latitude",
        validators=[InputRequired(message="Latitude is required"), NumberRange(min=-90, max=90)],
    )
    longitude = FloatField(
        "Longitude",
        validators=[InputRequired(message="Longitude is required"), NumberRange(min=-180, max=180)],
    )
    address = StringField("Address", validators=[Optional(), Length(max=255)], filters=[_strip])
    city = StringField("City", validators=[Optional(), Length(max=120)], filters=[_strip])


class PetForm(ApiForm):
    """Listing body. Field names follow the JSON API."""

    name = StringField(
        "Name",
        validators=[DataRequired(message="Pet name is required"), Length(max=50)],
        filters=[_strip],
    )
    species = SelectField("Species", choices=SPECIES, filters=[_lower],
                          validators=[DataRequired(message="Species is required")])
    breed = StringField("Breed", validators=[Optional(), Length(max=120)], filters=[_strip])
    age = FormField(AgeForm)
    gender = SelectField("Gender", choices=GENDERS, default="unknown", filters=[_lower])
    size = SelectField("Size", choices=SIZES, default="medium", filters=[_lower])
    color = StringField("Color", validators=[Optional(), Length(max=120)], filters=[_strip])
    description = TextAreaField(
        "Description",
        validators=[DataRequired(message="Description is required"), Length(max=1000)],
    )
    healthInfo = FormField(HealthForm)
    location = FormField(LocationForm)
    images = FieldList(StringField("Image", validators=[DataRequired(), Length(max=500)]))
    adoptionFee = FloatField("Adoption fee", default=0, validators=[Optional(), NumberRange(min=0)])
    adoptionFeeReason = TextAreaField(
        "Adoption fee reason", validators=[Length(max=500)], filters=[_strip]
    )
    contactPreference = SelectField(
        "Contact preference", choices=CONTACT_PREFERENCES, default="both", filters=[_lower]
    )

    def validate_images(self, field):
        if len(field.entries) > MAX_IMAGES:
            raise ValidationError(f"A listing can have at most {MAX_IMAGES} images")

    def validate_adoptionFeeReason(self, field):
        if (self.adoptionFee.data or 0) > 0 and not field.data:
            raise ValidationError("Please explain what the adoption fee covers")

    def apply_to(self, pet) -> None:
        pet.name = self.name.data
        pet.species = self.species.data
        pet.breed = self.breed.data or "Mixed/Unknown"
        pet.age_value = self.age.value.data
        pet.age_unit = self.age.unit.data
        pet.gender = self.gender.data
        pet.size = self.size.data
        pet.color = self.color.data or None
        pet.description = self.description.data.strip()
        pet.vaccinated = bool(self.healthInfo.vaccinated.data)
        pet.neutered = bool(self.healthInfo.neutered.data)
        pet.health_conditions = self.healthInfo.healthConditions.data or None
        pet.latitude = self.location.latitude.data
        pet.longitude = self.location.longitude.data
        pet.address = self.location.address.data or None
        pet.city = self.location.city.data or None
        pet.images = [entry.data.strip() for entry in self.images.entries]
        pet.adoption_fee = self.adoptionFee.data or 0
        pet.adoption_fee_reason = self.adoptionFeeReason.data or None
        pet.contact_preference = self.contactPreference.data


class StatusForm(ApiForm):
    status = SelectField("Status", choices=STATUSES, filters=[_lower],
                         validators=[DataRequired(message="Invalid status")])


def pet_as_payload(pet) -> dict:
    """Current listing state in request-body shape, for merging partial updates."""
    data = pet.to_dict()
    data["healthInfo"] = {k: v for k, v in data["healthInfo"].items() if v is not None}
    loc = data.pop("location") or {}
    coords = loc.get("coordinates") or [None, None]
    data["location"] = {
        "longitude": coords[0],
        "latitude": coords[1],
        "address": loc.get("address"),
        "city": loc.get("city"),
    }
    for key in ("id", "owner", "status", "createdAt", "updatedAt"):
        data.pop(key, None)
    return data
