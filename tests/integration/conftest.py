import os
import sys
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from app import create_app
from app.extensions import db
from app.models.user import User
from app.models.pet import Pet
from app.cli import BASE_LAT, BASE_LNG

T0 = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def _assert_memory_db(uri: str):
    if uri != "sqlite:///:memory:":
        raise RuntimeError(
            f"Refusing to run tests on non-memory DB: {uri!r}. "
            "This guard protects your real database."
        )


@pytest.fixture(scope="function")
def app():
    os.environ.pop("DATABASE_URL", None)

    flask_app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret-key",
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"check_same_thread": False}},
        "SERVER_NAME": "localhost",
        "SQLALCHEMY_TRACK_MODIFICATIONS": False,
    })

    _assert_memory_db(flask_app.config["SQLALCHEMY_DATABASE_URI"])

    with flask_app.app_context():
        db.create_all()
        yield flask_app
        _assert_memory_db(flask_app.config["SQLALCHEMY_DATABASE_URI"])
        db.session.remove()
        db.drop_all()

@pytest.fixture()
def client(app):
    return app.test_client()

@pytest.fixture()
def make_user(app):
    """Insert a user; returns plain values since requests end the session."""
    def _make_user(email: str, name: str, phone: str = None):
        u = User(email=email, name=name, phone=phone)
        u.set_password("pass1234")
        db.session.add(u)
        db.session.commit()
        return SimpleNamespace(
            id=u.id,
            email=u.email,
            name=u.name,
            headers={"Authorization": f"Bearer {u.get_auth_token()}"},
        )
    return _make_user

@pytest.fixture()
def make_pet(app):
    """Insert a listing; ``minutes`` offsets createdAt from a fixed instant."""
    counter = {"n": 0}

    def _make_pet(owner, name="Buddy", species="dog", lat=BASE_LAT, lng=BASE_LNG,
                  minutes=None, **fields):
        counter["n"] += 1
        offset = counter["n"] if minutes is None else minutes
        pet = Pet(
            owner_id=owner.id if owner is not None else None,
            name=name,
            species=species,
            age_value=fields.pop("age_value", 2),
            description=fields.pop("description", f"{name} needs a home."),
            latitude=lat,
            longitude=lng,
            created_at=T0 + timedelta(minutes=offset),
            **fields,
        )
        db.session.add(pet)
        db.session.commit()
        return pet.id
    return _make_pet


@pytest.fixture()
def sample_data(app, make_user, make_pet):
    owner = make_user("shelter@example.com", "Shelter", phone="555-0100")
    adopter = make_user("adopter@example.com", "Adopter")
    stranger = make_user("stranger@example.com", "Stranger")

    pet_id = make_pet(owner, name="Buddy", species="dog")
    return {
        "owner": owner,
        "adopter": adopter,
        "stranger": stranger,
        "pet_id": pet_id,
    }


@pytest.fixture()
def pet_payload():
    return {
        "name": "Luna",
        "species": "Cat",
        "breed": "Siamese",
        "age": {"value": 8, "unit": "months"},
        "gender": "female",
        "size": "small",
        "color": "Cream",
        "description": "Calm and affectionate.",
        "healthInfo": {"vaccinated": True, "neutered": False, "healthConditions": "None"},
        "location": {
            "latitude": BASE_LAT,
            "longitude": BASE_LNG,
            "address": "MG Road",
            "city": "Bangalore",
        },
        "images": ["/uploads/luna-1.jpg"],
        "adoptionFee": 0,
        "contactPreference": "email",
    }
