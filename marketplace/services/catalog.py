"""
Service catalog: categories and provider services.

Reads go through the read-through cache; every write invalidates its topic
before returning. Cached payloads are plain JSON (the *Read schemas dumped
in json mode), so a hit and a miss look the same to the router.
"""

import json
import logging
import math
from typing import Any

from pydantic import ValidationError
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..config import Settings
from ..errors import Conflict, Forbidden, NotFound, ValidationFailed
from ..models.entities import Categories, Services, Users
from ..schemas.categories import CategoryCreate, CategoryRead, CategoryUpdate
from ..schemas.services import ServiceCreate, ServiceRead, ServiceUpdate
from .cache import CacheInvalidator, ReadThroughCache, build_cache_key
from .cache.invalidator import category_detail_key, service_detail_key
from .cache.keys import CATEGORIES_LIST, SERVICES_LIST

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Serialization / merge
# ──────────────────────────────────────────────────────────────────────────────

def service_to_dict(service: Services) -> dict[str, Any]:
    location = None
    if service.location_address is not None or service.location_lat is not None:
        location = {
            "address": service.location_address,
            "lat": service.location_lat,
            "lng": service.location_lng,
        }
    data = ServiceRead(
        id=service.id,
        provider_id=service.provider_id,
        provider_name=service.provider.name if service.provider else None,
        name=service.name,
        category=service.category,
        description=service.description,
        price=service.price,
        price_type=service.price_type,
        duration_min=service.duration_min,
        services_offered=service.services_offered,
        location=location,
        is_active=service.is_active,
        rating_average=service.rating_average,
        rating_count=service.rating_count,
        created_at=service.created_at,
        updated_at=service.updated_at,
    )
    return data.model_dump(mode="json")


def editable_fields(service: Services) -> dict[str, Any]:
    """Current values of everything ServiceUpdate may touch."""
    data = service_to_dict(service)
    return {
        key: data[key]
        for key in (
            "name",
            "category",
            "description",
            "price",
            "price_type",
            "duration_min",
            "services_offered",
            "is_active",
            "location",
        )
    }


def merge_service_update(current: dict[str, Any], patch: ServiceUpdate | dict) -> dict[str, Any]:
    """
    Merge a version-1 update payload into the current field values.

    Only keys present in the patch change. A nested location is merged key by
    key; an explicit null clears it. Unknown keys anywhere, or another
    schema_version, raise ValidationFailed. Pure: inputs are not modified.
    """
    if not isinstance(patch, ServiceUpdate):
        try:
            patch = ServiceUpdate.model_validate(patch)
        except ValidationError as e:
            raise ValidationFailed(f"Invalid service update: {e.errors(include_url=False)}") from e

    changes = patch.model_dump(exclude_unset=True, exclude={"schema_version"})
    merged = dict(current)

    if "location" in changes:
        location = changes.pop("location")
        if location is None:
            merged["location"] = None
        else:
            merged["location"] = {**(current.get("location") or {}), **location}

    merged.update(changes)
    return merged


def _apply_fields(service: Services, fields: dict[str, Any]) -> None:
    for key in ("name", "category", "description", "price", "price_type", "duration_min", "is_active"):
        if key in fields:
            setattr(service, key, fields[key])
    if "services_offered" in fields:
        service.services_offered = json.dumps(fields["services_offered"] or [])
    if "location" in fields:
        location = fields["location"] or {}
        service.location_address = location.get("address")
        service.location_lat = location.get("lat")
        service.location_lng = location.get("lng")


def _pagination(page: int, limit: int, total: int) -> dict[str, int]:
    return {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit) if limit else 0}


# ──────────────────────────────────────────────────────────────────────────────
# Service
# ──────────────────────────────────────────────────────────────────────────────

class CatalogService:
    def __init__(
        self,
        db: Session,
        cache: ReadThroughCache,
        invalidator: CacheInvalidator,
        settings: Settings,
    ):
        self.db = db
        self.cache = cache
        self.invalidator = invalidator
        self.settings = settings

    # ── Categories ───────────────────────────────────────────────────────

    def list_categories(self, is_active: bool | None = True) -> list[dict]:
        key = build_cache_key(CATEGORIES_LIST, {"is_active": is_active})

        def compute():
            query = self.db.query(Categories)
            if is_active is not None:
                query = query.filter(Categories.is_active.is_(is_active))
            return [
                CategoryRead.model_validate(c).model_dump(mode="json")
                for c in query.order_by(Categories.name).all()
            ]

        return self.cache.with_cache(key, self.settings.categories_cache_ttl, compute)

    def get_category(self, category_id: int) -> dict:
        def compute():
            category = self.db.get(Categories, category_id)
            if not category:
                raise NotFound("Category not found")
            return CategoryRead.model_validate(category).model_dump(mode="json")

        return self.cache.with_cache(
            category_detail_key(category_id), self.settings.categories_cache_ttl, compute
        )

    def create_category(self, actor: Users, data: CategoryCreate) -> dict:
        self._require_admin(actor)
        self._check_category_name(data.name)

        category = Categories(
            name=data.name.strip(),
            description=data.description,
            icon=data.icon,
            is_active=True,
        )
        self.db.add(category)
        self.db.commit()
        self.db.refresh(category)

        self.invalidator.categories_changed(category.id)
        logger.info(f"Category created: id={category.id} name={category.name!r}")
        return CategoryRead.model_validate(category).model_dump(mode="json")

    def update_category(self, actor: Users, category_id: int, data: CategoryUpdate) -> dict:
        self._require_admin(actor)
        category = self.db.get(Categories, category_id)
        if not category:
            raise NotFound("Category not found")

        changes = data.model_dump(exclude_unset=True)
        if changes.get("name") is not None:
            self._check_category_name(changes["name"], exclude_id=category.id)
            changes["name"] = changes["name"].strip()
        for key, value in changes.items():
            setattr(category, key, value)

        self.db.commit()
        self.db.refresh(category)
        self.invalidator.categories_changed(category.id)
        return CategoryRead.model_validate(category).model_dump(mode="json")

    def delete_category(self, actor: Users, category_id: int) -> None:
        self._require_admin(actor)
        category = self.db.get(Categories, category_id)
        if not category:
            raise NotFound("Category not found")

        self.db.delete(category)
        self.db.commit()
        self.invalidator.categories_changed(category_id)
        logger.info(f"Category deleted: id={category_id}")

    # ── Services ─────────────────────────────────────────────────────────

    def list_services(
        self,
        category: str | None = None,
        search: str | None = None,
        provider_id: int | None = None,
        min_price: float | None = None,
        max_price: float | None = None,
        min_rating: float | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict:
        params = {
            "category": category,
            "search": search,
            "provider_id": provider_id,
            "min_price": min_price,
            "max_price": max_price,
            "min_rating": min_rating,
            "page": page,
            "limit": limit,
        }
        key = build_cache_key(SERVICES_LIST, params)

        def compute():
            query = self.db.query(Services).filter(Services.is_active.is_(True))
            if category:
                query = query.filter(func.lower(Services.category) == category.strip().lower())
            if search:
                pattern = f"%{search.strip()}%"
                query = query.join(Users, Services.provider_id == Users.id).filter(
                    or_(
                        Services.name.ilike(pattern),
                        Services.description.ilike(pattern),
                        Services.services_offered.ilike(pattern),
                        Users.name.ilike(pattern),
                    )
                )
            if provider_id is not None:
                query = query.filter(Services.provider_id == provider_id)
            if min_price is not None:
                query = query.filter(Services.price >= min_price)
            if max_price is not None:
                query = query.filter(Services.price <= max_price)
            if min_rating is not None:
                query = query.filter(Services.rating_average >= min_rating)

            total = query.with_entities(func.count(Services.id)).scalar()
            items = (
                query.order_by(Services.created_at.desc(), Services.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            return {
                "services": [service_to_dict(s) for s in items],
                "pagination": _pagination(page, limit, total),
            }

        return self.cache.with_cache(key, self.settings.services_cache_ttl, compute)

    def get_service(self, service_id: int) -> dict:
        def compute():
            service = self.db.get(Services, service_id)
            if not service or not service.is_active:
                raise NotFound("Service not found")
            return service_to_dict(service)

        return self.cache.with_cache(
            service_detail_key(service_id), self.settings.service_detail_cache_ttl, compute
        )

    def create_service(self, actor: Users, data: ServiceCreate) -> dict:
        if actor.role != "provider":
            raise Forbidden("Only providers can create services")

        service = Services(provider_id=actor.id, is_active=True)
        _apply_fields(service, data.model_dump())
        self.db.add(service)
        self.db.commit()
        self.db.refresh(service)

        self.invalidator.services_changed(service.id)
        logger.info(f"Service created: id={service.id} provider={actor.id}")
        return service_to_dict(service)

    def update_service(self, actor: Users, service_id: int, patch: ServiceUpdate | dict) -> dict:
        service = self._owned_service(actor, service_id)

        merged = merge_service_update(editable_fields(service), patch)
        try:
            _apply_fields(service, merged)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(service)

        self.invalidator.services_changed(service.id)
        return service_to_dict(service)

    def delete_service(self, actor: Users, service_id: int) -> None:
        """Soft delete: the service stays referenced by past bookings."""
        service = self._owned_service(actor, service_id)
        service.is_active = False
        self.db.commit()

        self.invalidator.services_changed(service_id)
        logger.info(f"Service deactivated: id={service_id}")

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _require_admin(actor: Users) -> None:
        if actor.role != "admin":
            raise Forbidden("Admin access required")

    def _check_category_name(self, name: str, exclude_id: int | None = None) -> None:
        query = self.db.query(Categories).filter(func.lower(Categories.name) == name.strip().lower())
        if exclude_id is not None:
            query = query.filter(Categories.id != exclude_id)
        if query.first():
            raise Conflict("Category already exists")

    def _owned_service(self, actor: Users, service_id: int) -> Services:
        service = self.db.get(Services, service_id)
        if not service:
            raise NotFound("Service not found")
        if service.provider_id != actor.id:
            raise Forbidden("Not authorized to modify this service")
        return service
