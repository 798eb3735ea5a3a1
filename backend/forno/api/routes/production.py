"""Production routes - produce sub-recipe batches."""

from fastapi import APIRouter, HTTPException, Request

from forno.core.rate_limit import limiter
from forno.core.rbac import RequireWaiter
from forno.db.session import DbSession
from forno.schemas.inventory import IngredientResponse, ProductionRequest
from forno.services.catalog_store import CatalogStore
from forno.services.production_service import ProductionService

router = APIRouter()


@router.post("", response_model=IngredientResponse)
@limiter.limit("30/minute")
def produce_batch(
    request: Request, data: ProductionRequest, db: DbSession, current_user: RequireWaiter
):
    """Produce batches of a sub-recipe and return its updated stock and cost."""
    produced = ProductionService(db).produce_batch(
        data.sub_recipe_id,
        data.batch_count,
        data.actual_output_qty,
        branch_id=data.branch_id,
        produced_by=current_user.name,
    )
    if not produced:
        raise HTTPException(
            status_code=422,
            detail=f"Ingredient {data.sub_recipe_id} is not a sub-recipe with a composition",
        )
    return CatalogStore(db).require_ingredient(data.sub_recipe_id)
