from flask import Blueprint, abort, jsonify
from flask_login import current_user, login_required
from wtforms import FloatField, Form, FormField, PasswordField, StringField
from wtforms.fields import EmailField
from wtforms.validators import (DataRequired, Email, Length, NumberRange,
                                Optional)

from ..extensions import db
from ..forms import ApiForm, flatten_payload, json_payload, validation_error
from ..models.user import User

auth_bp = Blueprint("auth", __name__)


class UserLocationForm(Form):
    latitude = FloatField("Latitude", validators=[Optional(), NumberRange(min=-90, max=90)])
    longitude = FloatField("Longitude", validators=[Optional(), NumberRange(min=-180, max=180)])
    address = StringField("Address", validators=[Optional(), Length(max=255)])
    city = StringField("City", validators=[Optional(), Length(max=120)])


class RegisterForm(ApiForm):
    name = StringField("Name", validators=[DataRequired(), Length(min=2, max=120)])
    email = EmailField("Email", validators=[DataRequired(), Email()])
    password = PasswordField("Password", validators=[DataRequired(), Length(min=6)])
    phone = StringField("Phone", validators=[Optional(), Length(max=40)])
    location = FormField(UserLocationForm)


class LoginForm(ApiForm):
    email = EmailField("Email", validators=[DataRequired(), Email()])
    password = PasswordField("Password", validators=[DataRequired()])


class ProfileForm(ApiForm):
    name = StringField("Name", validators=[Optional(), Length(min=2, max=120)])
    phone = StringField("Phone", validators=[Optional(), Length(max=40)])
    location = FormField(UserLocationForm)


def _apply_location(user: User, form: UserLocationForm) -> None:
    if form.latitude.data is not None and form.longitude.data is not None:
        user.latitude = form.latitude.data
        user.longitude = form.longitude.data
    if form.address.data:
        user.address = form.address.data.strip()
    if form.city.data:
        user.city = form.city.data.strip()


@auth_bp.post("/register")
def register():
    form = RegisterForm(formdata=flatten_payload(json_payload()))
    if not form.validate():
        return validation_error(form)

    email = form.email.data.strip().lower()
    if User.query.filter_by(email=email).first():
        abort(409, description="Email is already registered")

    user = User(
        email=email,
        name=form.name.data.strip(),
        phone=(form.phone.data or "").strip() or None,
    )
    user.set_password(form.password.data)
    _apply_location(user, form.location)
    db.session.add(user)
    db.session.commit()
    return jsonify(success=True, token=user.get_auth_token(), user=user.to_dict()), 201


@auth_bp.post("/login")
def login():
    form = LoginForm(formdata=flatten_payload(json_payload()))
    if not form.validate():
        return validation_error(form)
    user = User.query.filter_by(email=form.email.data.strip().lower()).first()
    if not user or not user.check_password(form.password.data):
        abort(401, description="Invalid credentials")
    return jsonify(success=True, token=user.get_auth_token(), user=user.to_dict())


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(success=True, data=current_user.to_dict())


@auth_bp.put("/profile")
@login_required
def update_profile():
    form = ProfileForm(formdata=flatten_payload(json_payload()))
    if not form.validate():
        return validation_error(form)
    if form.name.data:
        current_user.name = form.name.data.strip()
    if form.phone.data is not None and form.phone.raw_data:
        current_user.phone = form.phone.data.strip() or None
    _apply_location(current_user, form.location)
    db.session.commit()
    return jsonify(success=True, data=current_user.to_dict())
