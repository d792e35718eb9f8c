# marketplace/routers/services.py

from fastapi import APIRouter, Depends, Query, status

from ..dependencies import get_catalog, get_current_user
from ..models.entities import Users
from ..schemas.services import ServiceCreate, ServiceList, ServiceRead, ServiceUpdate
from ..services.catalog import CatalogService

router = APIRouter(prefix="/services", tags=["services"])


@router.get("", response_model=ServiceList)
def list_services(
    category: str | None = None,
    search: str | None = None,
    provider_id: int | None = None,
    min_price: float | None = Query(None, ge=0),
    max_price: float | None = Query(None, ge=0),
    min_rating: float | None = Query(None, ge=0, le=5),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    catalog: CatalogService = Depends(get_catalog),
):
    return catalog.list_services(
        category=category,
        search=search,
        provider_id=provider_id,
        min_price=min_price,
        max_price=max_price,
        min_rating=min_rating,
        page=page,
        limit=limit,
    )


@router.get("/{service_id}", response_model=ServiceRead)
def get_service(service_id: int, catalog: CatalogService = Depends(get_catalog)):
    return catalog.get_service(service_id)


@router.post("", response_model=ServiceRead, status_code=status.HTTP_201_CREATED)
def create_service(
    data: ServiceCreate,
    user: Users = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog),
):
    return catalog.create_service(user, data)


@router.put("/{service_id}", response_model=ServiceRead)
def update_service(
    service_id: int,
    data: ServiceUpdate,
    user: Users = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog),
):
    return catalog.update_service(user, service_id, data)


@router.delete("/{service_id}")
def delete_service(
    service_id: int,
    user: Users = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog),
):
    catalog.delete_service(user, service_id)
    return {"success": True, "message": "Service deleted successfully"}
