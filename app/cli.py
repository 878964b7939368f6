from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

import click
from flask import current_app
from sqlalchemy import text

from .extensions import db
from .geo import destination_point

from .models.user import User
from .models.pet import Pet
from .models.adoption import AdoptionRequest


def _db_uri() -> str:
    return current_app.config.get("SQLALCHEMY_DATABASE_URI", "")

@click.command("init-db")
def init_db_cmd():
    uri = _db_uri()
    click.echo(f"Creating tables on DB: {uri}")
    db.create_all()
    click.echo("✔ Tables created.")

@click.command("reset-db")
@click.option("--force", is_flag=True, help="Drop + create (irreversible).")
def reset_db_cmd(force: bool):
    uri = _db_uri()
    if not force:
        click.echo("Add --force to confirm dropping all tables.")
        return
    click.echo(f"Dropping & creating tables on DB: {uri}")
    db.drop_all()
    db.create_all()
    click.echo("✔ Database reset.")

@click.command("purge-data")
def purge_data_cmd():
    db.session.query(AdoptionRequest).delete()
    db.session.query(Pet).delete()
    db.session.query(User).delete()
    db.session.commit()
    if _db_uri().startswith("sqlite:"):
        db.session.execute(text("DELETE FROM sqlite_sequence"))
        db.session.commit()
    click.echo("✔ All data removed (schema kept).")


# Bangalore
BASE_LAT = 12.9537754
BASE_LNG = 77.7008752

# distance ring (km) -> (city, address, bearing)
RINGS = {
    2: [("Indiranagar", "100 Feet Road", 45), ("Koramangala", "80 Feet Road", 135)],
    5: [("Whitefield", "ITPL Main Road", 90), ("Electronic City", "Phase 1", 180)],
    10: [("Yelahanka", "New Town", 0), ("Bannerghatta", "Road Area", 170)],
    25: [("Hosur", "Industrial Area", 150), ("Devanahalli", "Airport Road", 30)],
    50: [("Kolar", "Main Road", 70), ("Tumkur", "City Center", 310)],
    100: [("Mysore", "Sayyaji Rao Road", 220), ("Vellore", "Fort Area", 110)],
    200: [("Mangalore", "Hampankatta", 260), ("Salem", "Junction Area", 130)],
    500: [("Hyderabad", "Banjara Hills", 350), ("Chennai", "T Nagar", 100)],
}

SPECIES_BREEDS = {
    "dog": ["Golden Retriever", "German Shepherd", "Labrador Retriever", "Boxer", "Indie"],
    "cat": ["Persian", "Siamese", "Maine Coon", "Bengal", "Domestic Shorthair"],
    "bird": ["Budgerigar", "Cockatiel", "Lovebird", "Canary", "Parakeet"],
    "rabbit": ["Holland Lop", "Mini Rex", "Lionhead", "Dutch", "Flemish Giant"],
    "hamster": ["Syrian", "Dwarf Campbell", "Winter White", "Roborovski", "Chinese"],
    "fish": ["Betta", "Goldfish", "Guppy", "Angelfish", "Molly"],
    "turtle": ["Red-eared Slider", "Box Turtle", "Painted Turtle", "Map Turtle", "Mud Turtle"],
}

PET_NAMES = [
    "Buddy", "Max", "Bella", "Rocky", "Luna", "Milo", "Coco", "Simba", "Daisy", "Oreo",
    "Kiwi", "Sunny", "Thumper", "Peanut", "Nibbles", "Bubbles", "Finn", "Shelly", "Tank",
]

SIZES_BY_SPECIES = {
    "dog": ["medium", "large", "extra-large"],
    "cat": ["small", "medium"],
}


def _ring_location(i: int):
    rings = sorted(RINGS)
    km = rings[i % len(rings)]
    city, address, bearing = RINGS[km][(i // len(rings)) % len(RINGS[km])]
    lat, lng = destination_point(BASE_LAT, BASE_LNG, km, bearing)
    return lat, lng, address, city


@click.command("seed-demo")
@click.option("--per-species", default=5, show_default=True, help="Listings per species.")
def seed_demo_cmd(per_species: int):
    random.seed(42)
    click.echo(f"Seeding on DB: {_db_uri()}")

    shelter = User.query.filter_by(email="shelter@nearpaws.com").first()
    if shelter is None:
        shelter = User(
            email="shelter@nearpaws.com",
            name="NearPaws Shelter",
            phone="555-123-4567",
            latitude=BASE_LAT,
            longitude=BASE_LNG,
            address="MG Road",
            city="Bangalore",
        )
        shelter.set_password("password123")
        db.session.add(shelter)
        db.session.commit()

    now = datetime.now(timezone.utc)
    created = 0
    for species, breeds in SPECIES_BREEDS.items():
        for k in range(per_species):
            lat, lng, address, city = _ring_location(created)
            fee = random.choice([0, 0, 50, 150])
            pet = Pet(
                owner_id=shelter.id,
                name=random.choice(PET_NAMES),
                species=species,
                breed=breeds[k % len(breeds)],
                age_value=random.randint(1, 10),
                age_unit=random.choice(["months", "years"]),
                gender=random.choice(["male", "female"]),
                size=random.choice(SIZES_BY_SPECIES.get(species, ["small"])),
                color=random.choice(["Black", "White", "Brown", "Golden", "Grey"]),
                description=f"A lovely {species} looking for a forever home near {city}.",
                vaccinated=random.random() < 0.7,
                neutered=random.random() < 0.5,
                health_conditions="None",
                latitude=lat,
                longitude=lng,
                address=address,
                city=city,
                images=[],
                adoption_fee=fee,
                adoption_fee_reason="Vaccinations, deworming and food while fostering." if fee else None,
                contact_preference=random.choice(["email", "phone", "both"]),
                created_at=now - timedelta(hours=created),
            )
            db.session.add(pet)
            created += 1
    db.session.commit()

    click.echo(
        "✔ Seed completed:\n"
        f"  Shelter: shelter@nearpaws.com (password: password123)\n"
        f"  Pets: {created} around ({BASE_LAT}, {BASE_LNG})"
    )
