"""Listing search: filter normalization, geospatial ranking and pagination.

The nearby search computes great-circle distances in the database through the
``geo_distance_m`` SQL function. When that query fails (the function is not
available on the backend, a bad index, ...) the search degrades to the plain
filtered listing, newest first, without distances.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import List, Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from wtforms import Form, IntegerField, StringField
from wtforms.validators import NumberRange

from ..extensions import db
from ..geo import to_km, valid_point, within_radius
from ..models.pet import Pet
from ..models.user import User

DEFAULT_LIMIT = 10
NEARBY_DEFAULT_LIMIT = 12
MAX_LIMIT = 100
# keeps OFFSET inside a 64-bit integer
MAX_PAGE = 1_000_000

SORT_DISTANCE = "distance"
SORT_OLDEST = "createdAt"
SORT_NEWEST = "-createdAt"

MODE_GEO = "geo"
MODE_FALLBACK = "fallback"
MODE_PLAIN = "plain"


class InvalidCoordinates(ValueError):
    pass


def _lower(value):
    return value.strip().lower() if value and value.strip() else None


def _stripped(value):
    return value.strip() if value and value.strip() else None


def _page_bound(value):
    # 0 fails NumberRange(min=1) and falls back to page 1
    if isinstance(value, int) and not 1 <= value <= MAX_PAGE:
        return 0
    return value


def _limit_cap(value):
    if isinstance(value, int):
        return min(value, MAX_LIMIT) if value >= 1 else 0
    return value


def _to_float(raw: Optional[str]) -> Optional[float]:
    if raw is None or not str(raw).strip():
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


class SearchForm(Form):
    """Recognised query-string parameters of the listing endpoints."""

    latitude = StringField(filters=[_stripped])
    longitude = StringField(filters=[_stripped])
    distance = StringField(filters=[_stripped])
    species = StringField(filters=[_lower])
    gender = StringField(filters=[_lower])
    size = StringField(filters=[_lower])
    status = StringField(filters=[_lower])
    search = StringField(filters=[_stripped])
    page = IntegerField(filters=[_page_bound], validators=[NumberRange(min=1)])
    limit = IntegerField(filters=[_limit_cap], validators=[NumberRange(min=1)])
    sort = StringField(filters=[_stripped])
    sortDirection = StringField(filters=[_lower])

    def to_options(self, default_limit: int, default_sort: str) -> "SearchOptions":
        self.validate()
        page = 1 if self.page.errors else self.page.data
        limit = default_limit if self.limit.errors else self.limit.data
        return SearchOptions(
            species=self.species.data,
            gender=self.gender.data,
            size=self.size.data,
            status=self.status.data or "available",
            search=self.search.data,
            page=page,
            limit=limit,
            sort=self.sort.data or default_sort,
            descending=self.sortDirection.data == "desc",
            latitude_raw=self.latitude.data,
            longitude_raw=self.longitude.data,
            radius_km=_to_float(self.distance.data),
        )


@dataclass(frozen=True)
class SearchOptions:
    species: Optional[str] = None
    gender: Optional[str] = None
    size: Optional[str] = None
    status: str = "available"
    search: Optional[str] = None
    page: int = 1
    limit: int = DEFAULT_LIMIT
    sort: str = SORT_NEWEST
    descending: bool = False
    latitude_raw: Optional[str] = None
    longitude_raw: Optional[str] = None
    radius_km: Optional[float] = None

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def has_point(self) -> bool:
        return self.latitude_raw is not None and self.longitude_raw is not None

    def point(self):
        """(lat, lng) as floats, or InvalidCoordinates."""
        if not self.has_point:
            raise InvalidCoordinates("Please provide latitude and longitude")
        lat = _to_float(self.latitude_raw)
        lng = _to_float(self.longitude_raw)
        if lat is None or lng is None or not valid_point(lat, lng):
            raise InvalidCoordinates("Invalid coordinates")
        return lat, lng


def parse_options(args, default_limit=DEFAULT_LIMIT, default_sort=SORT_NEWEST) -> SearchOptions:
    return SearchForm(args).to_options(default_limit, default_sort)


@dataclass
class Page:
    items: List[dict]
    total: int
    page: int
    limit: int
    mode: str = MODE_PLAIN

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def envelope(self) -> dict:
        return {
            "success": True,
            "count": len(self.items),
            "total": self.total,
            "totalPages": self.total_pages,
            "currentPage": self.page,
            "data": self.items,
        }


def filter_criteria(options: SearchOptions) -> list:
    criteria = [Pet.status == options.status]
    if options.species:
        criteria.append(Pet.species == options.species)
    if options.gender:
        criteria.append(Pet.gender == options.gender)
    if options.size:
        criteria.append(Pet.size == options.size)
    if options.search:
        criteria.append(
            _folded(Pet.name).contains(options.search.casefold(), autoescape=True)
        )
    return criteria


def _folded(column):
    # SQLite lower() only folds ASCII
    if db.engine.dialect.name == "sqlite":
        return func.casefold(column)
    return func.lower(column)


def distance_expr(lat: float, lng: float):
    return func.geo_distance_m(Pet.latitude, Pet.longitude, lat, lng)


def _created_order(descending: bool):
    if descending:
        return [Pet.created_at.desc(), Pet.id.desc()]
    return [Pet.created_at.asc(), Pet.id.asc()]


def _serialize(pet: Pet, owner: Optional[User], distance_m=None) -> dict:
    data = pet.to_dict()
    data["owner"] = owner.contact_view() if owner else None
    if distance_m is not None:
        data["distance"] = distance_m
        data["distanceInKm"] = to_km(distance_m)
    return data


def list_pets(options: SearchOptions, point=None, mode: str = MODE_PLAIN) -> Page:
    """Plain filtered listing, optionally restricted to a radius around point."""
    criteria = filter_criteria(options)
    if point is not None and options.radius_km is not None:
        lat, lng = point
        criteria.append(within_radius(distance_expr(lat, lng), options.radius_km))

    total = db.session.query(func.count(Pet.id)).filter(*criteria).scalar()

    rows = (
        db.session.query(Pet, User)
        .outerjoin(User, User.id == Pet.owner_id)
        .filter(*criteria)
        .order_by(*_created_order(options.sort != SORT_OLDEST))
        .offset(options.skip)
        .limit(options.limit)
        .all()
    )
    items = [_serialize(pet, owner) for pet, owner in rows]
    return Page(items=items, total=total or 0, page=options.page, limit=options.limit, mode=mode)


def rank_nearby(options: SearchOptions, lat: float, lng: float) -> Page:
    """Distance-annotated page of listings around (lat, lng)."""
    dist = distance_expr(lat, lng)
    criteria = filter_criteria(options) + [
        Pet.latitude.isnot(None),
        Pet.longitude.isnot(None),
    ]
    if options.radius_km is not None:
        criteria.append(within_radius(dist, options.radius_km))

    total = db.session.query(func.count(Pet.id)).filter(*criteria).scalar()

    if options.sort == SORT_NEWEST:
        order = _created_order(True)
    elif options.sort == SORT_OLDEST:
        order = _created_order(False)
    elif options.sort == SORT_DISTANCE and options.descending:
        order = [dist.desc(), Pet.id.asc()]
    else:
        order = [dist.asc(), Pet.id.asc()]

    rows = (
        db.session.query(Pet, dist.label("distance"), User)
        .outerjoin(User, User.id == Pet.owner_id)
        .filter(*criteria)
        .order_by(*order)
        .offset(options.skip)
        .limit(options.limit)
        .all()
    )
    items = [_serialize(pet, owner, distance_m) for pet, distance_m, owner in rows]
    return Page(items=items, total=total or 0, page=options.page, limit=options.limit, mode=MODE_GEO)


def nearby(options: SearchOptions) -> Page:
    """Nearby search with a single fallback to the plain listing.

    Raises InvalidCoordinates before touching the database. Errors from the
    fallback query propagate.
    """
    lat, lng = options.point()
    try:
        return rank_nearby(options, lat, lng)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning(
            "nearby search failed, serving plain listing instead", exc_info=True
        )
    return list_pets(replace(options, sort=SORT_NEWEST), mode=MODE_FALLBACK)
