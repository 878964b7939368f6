from flask import Blueprint, abort, jsonify, request
from flask_login import current_user, login_required

from ..extensions import db
from ..forms import flatten_payload, json_payload, validation_error
from ..models.pet import Pet
from .forms import PetForm, StatusForm, pet_as_payload
from .search import (NEARBY_DEFAULT_LIMIT, SORT_DISTANCE, InvalidCoordinates,
                     list_pets, nearby, parse_options)

pets_bp = Blueprint("pets", __name__)


def _get_owned_pet_or_403(pet_id: int, action: str) -> Pet:
    pet = db.session.get(Pet, pet_id)
    if pet is None:
        abort(404, description="Pet not found")
    if pet.owner_id != current_user.id:
        abort(403, description=f"Not authorized to {action} this pet")
    return pet


def _merge(base: dict, changes: dict) -> dict:
    merged = dict(base)
    for key, value in changes.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


@pets_bp.get("/pets")
def get_pets():
    options = parse_options(request.args)
    point = None
    if options.has_point and options.radius_km is not None:
        try:
            point = options.point()
        except InvalidCoordinates as exc:
            abort(400, description=str(exc))
    page = list_pets(options, point=point)
    return jsonify(page.envelope())


@pets_bp.get("/pets/nearby")
def get_nearby_pets():
    options = parse_options(
        request.args, default_limit=NEARBY_DEFAULT_LIMIT, default_sort=SORT_DISTANCE
    )
    try:
        page = nearby(options)
    except InvalidCoordinates as exc:
        abort(400, description=str(exc))
    resp = jsonify(page.envelope())
    resp.headers["X-Search-Mode"] = page.mode
    return resp


@pets_bp.get("/pets/user/my-pets")
@login_required
def get_my_pets():
    pets = (
        Pet.query.filter_by(owner_id=current_user.id)
        .order_by(Pet.created_at.desc(), Pet.id.desc())
        .all()
    )
    return jsonify(success=True, count=len(pets), data=[p.to_dict() for p in pets])


@pets_bp.get("/pets/<int:pet_id>")
def get_pet(pet_id):
    pet = db.session.get(Pet, pet_id)
    if pet is None:
        abort(404, description="Pet not found")
    owner = pet.owner.contact_view(with_location=True) if pet.owner else None
    data = pet.to_dict(owner_view=owner)
    return jsonify(success=True, data=data)


@pets_bp.post("/pets")
@login_required
def create_pet():
    form = PetForm(formdata=flatten_payload(json_payload()))
    if not form.validate():
        return validation_error(form)
    pet = Pet(owner_id=current_user.id)
    form.apply_to(pet)
    db.session.add(pet)
    db.session.commit()
    return jsonify(success=True, data=pet.to_dict()), 201


@pets_bp.put("/pets/<int:pet_id>")
@login_required
def update_pet(pet_id):
    pet = _get_owned_pet_or_403(pet_id, "update")
    changes = json_payload()

    # location only moves when both coordinates are sent
    loc = changes.get("location")
    if isinstance(loc, dict) and (loc.get("latitude") is None or loc.get("longitude") is None):
        changes.pop("location")

    base = pet_as_payload(pet)
    new_images = changes.pop("images", None) or []
    if not isinstance(new_images, list):
        abort(400, description="images must be a list")
    merged = _merge(base, changes)
    merged["images"] = base["images"] + new_images

    form = PetForm(formdata=flatten_payload(merged))
    if not form.validate():
        return validation_error(form)
    form.apply_to(pet)
    db.session.commit()
    return jsonify(success=True, data=pet.to_dict())


@pets_bp.patch("/pets/<int:pet_id>/status")
@login_required
def update_pet_status(pet_id):
    form = StatusForm(formdata=flatten_payload(json_payload()))
    if not form.validate():
        abort(400, description="Invalid status")
    pet = _get_owned_pet_or_403(pet_id, "update")
    pet.status = form.status.data
    db.session.commit()
    return jsonify(success=True, data=pet.to_dict())


@pets_bp.delete("/pets/<int:pet_id>")
@login_required
def delete_pet(pet_id):
    pet = _get_owned_pet_or_403(pet_id, "delete")
    db.session.delete(pet)
    db.session.commit()
    return jsonify(success=True, data={})
