# marketplace/routers/categories.py

from fastapi import APIRouter, Depends, status

from ..dependencies import get_catalog, get_current_user
from ..models.entities import Users
from ..schemas.categories import CategoryCreate, CategoryRead, CategoryUpdate
from ..services.catalog import CatalogService

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("", response_model=list[CategoryRead])
def list_categories(
    is_active: bool | None = True,
    catalog: CatalogService = Depends(get_catalog),
):
    return catalog.list_categories(is_active)


@router.get("/{category_id}", response_model=CategoryRead)
def get_category(category_id: int, catalog: CatalogService = Depends(get_catalog)):
    return catalog.get_category(category_id)


@router.post("", response_model=CategoryRead, status_code=status.HTTP_201_CREATED)
def create_category(
    data: CategoryCreate,
    user: Users = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog),
):
    return catalog.create_category(user, data)


@router.put("/{category_id}", response_model=CategoryRead)
def update_category(
    category_id: int,
    data: CategoryUpdate,
    user: Users = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog),
):
    return catalog.update_category(user, category_id, data)


@router.delete("/{category_id}")
def delete_category(
    category_id: int,
    user: Users = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog),
):
    catalog.delete_category(user, category_id)
    return {"success": True, "message": "Category deleted successfully"}
