from flask import Blueprint, abort, current_app, jsonify
from flask_login import current_user, login_required
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload
from wtforms import IntegerField, SelectField, TextAreaField
from wtforms.validators import DataRequired, InputRequired, Length

from ..extensions import db
from ..forms import ApiForm, flatten_payload, json_payload, validation_error
from ..models.adoption import AdoptionRequest
from ..models.pet import Pet
from ..signals import adoption_request_changed

adoptions_bp = Blueprint("adoptions", __name__)

DUPLICATE_MESSAGE = "You have already requested to adopt this pet"


class AdoptionRequestForm(ApiForm):
    petId = IntegerField("Pet", validators=[InputRequired(message="Pet ID is required")])
    message = TextAreaField(
        "Message",
        validators=[DataRequired(message="Message is required"),
                    Length(max=500, message="Message cannot exceed 500 characters")],
        filters=[lambda v: v.strip() if isinstance(v, str) else v],
    )


class DecisionForm(ApiForm):
    status = SelectField("Status", choices=("accepted", "rejected"))


def _get_request_or_404(req_id: int) -> AdoptionRequest:
    req = db.session.get(AdoptionRequest, req_id)
    if req is None:
        abort(404, description="Request not found")
    return req


def _publish(req: AdoptionRequest, action: str) -> None:
    adoption_request_changed.send(current_app._get_current_object(), request=req, action=action)


@adoptions_bp.post("/adoptions")
@login_required
def create_request():
    form = AdoptionRequestForm(formdata=flatten_payload(json_payload()))
    if not form.validate():
        return validation_error(form)

    pet = db.session.get(Pet, form.petId.data)
    if pet is None:
        abort(404, description="Pet not found")
    if pet.status != "available" or pet.owner_id is None:
        abort(400, description="This pet is no longer available for adoption")
    if pet.owner_id == current_user.id:
        abort(400, description="You cannot request to adopt your own pet")

    existing = AdoptionRequest.query.filter_by(
        pet_id=pet.id, requester_id=current_user.id
    ).first()
    if existing:
        abort(409, description=DUPLICATE_MESSAGE)

    req = AdoptionRequest(
        pet_id=pet.id,
        requester_id=current_user.id,
        owner_id=pet.owner_id,
        message=form.message.data,
    )
    db.session.add(req)
    try:
        db.session.commit()
    except IntegrityError:
        # lost the race against a concurrent identical request
        db.session.rollback()
        abort(409, description=DUPLICATE_MESSAGE)

    _publish(req, "created")
    return jsonify(success=True, data=req.to_dict(with_requester=True)), 201


@adoptions_bp.get("/adoptions/received")
@login_required
def received_requests():
    rows = (
        AdoptionRequest.query.options(
            joinedload(AdoptionRequest.pet), joinedload(AdoptionRequest.requester)
        )
        .filter_by(owner_id=current_user.id)
        .order_by(AdoptionRequest.created_at.desc(), AdoptionRequest.id.desc())
        .all()
    )
    return jsonify(
        success=True,
        count=len(rows),
        data=[r.to_dict(with_requester=True) for r in rows],
    )


@adoptions_bp.get("/adoptions/sent")
@login_required
def sent_requests():
    rows = (
        AdoptionRequest.query.options(
            joinedload(AdoptionRequest.pet), joinedload(AdoptionRequest.owner)
        )
        .filter_by(requester_id=current_user.id)
        .order_by(AdoptionRequest.created_at.desc(), AdoptionRequest.id.desc())
        .all()
    )
    return jsonify(
        success=True,
        count=len(rows),
        data=[r.to_dict(with_owner=True) for r in rows],
    )


@adoptions_bp.patch("/adoptions/<int:req_id>/status")
@login_required
def update_request_status(req_id):
    form = DecisionForm(formdata=flatten_payload(json_payload()))
    if not form.validate():
        abort(400, description='Invalid status. Use "accepted" or "rejected"')

    req = _get_request_or_404(req_id)
    if req.owner_id != current_user.id:
        abort(403, description="Not authorized to update this request")

    req.status = form.status.data
    db.session.commit()

    # Separate write: a failure here leaves the request accepted and the pet
    # still available.
    if req.status == "accepted":
        pet = db.session.get(Pet, req.pet_id)
        if pet is not None:
            pet.status = "pending"
            db.session.commit()

    _publish(req, req.status)
    return jsonify(success=True, data=req.to_dict(with_requester=True))


@adoptions_bp.delete("/adoptions/<int:req_id>")
@login_required
def withdraw_request(req_id):
    req = _get_request_or_404(req_id)
    if req.requester_id != current_user.id:
        abort(403, description="Not authorized to withdraw this request")

    req.status = "withdrawn"
    db.session.delete(req)
    db.session.commit()
    _publish(req, "withdrawn")
    return jsonify(success=True, data={})
