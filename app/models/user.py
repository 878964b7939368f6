from datetime import datetime, timezone

from flask import current_app
from flask_login import UserMixin
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import generate_password_hash, check_password_hash

from ..extensions import db, login_manager

TOKEN_SALT = "nearpaws-auth"


class User(db.Model, UserMixin):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(40), nullable=True)
    password_hash = db.Column(db.String(256), nullable=False)

    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)

    created_at = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def get_auth_token(self) -> str:
        s = URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)
        return s.dumps({"uid": self.id})

    @staticmethod
    def from_auth_token(token: str):
        s = URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)
        try:
            payload = s.loads(token, max_age=current_app.config["AUTH_TOKEN_MAX_AGE"])
        except (SignatureExpired, BadSignature):
            return None
        return db.session.get(User, payload.get("uid"))

    def location_dict(self):
        if self.latitude is None or self.longitude is None:
            return None
        return {
            "type": "Point",
            "coordinates": [self.longitude, self.latitude],
            "address": self.address,
            "city": self.city,
        }

    def contact_view(self, with_location: bool = False) -> dict:
        """Reduced projection shared with other users."""
        view = {"id": self.id, "name": self.name, "email": self.email, "phone": self.phone}
        if with_location:
            view["location"] = self.location_dict()
        return view

    def to_dict(self) -> dict:
        data = self.contact_view(with_location=True)
        data["createdAt"] = self.created_at.isoformat() if self.created_at else None
        return data


@login_manager.request_loader
def load_user_from_request(request):
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return User.from_auth_token(token.strip())
