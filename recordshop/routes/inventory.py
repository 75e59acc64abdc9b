# recordshop/routes/inventory.py
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from recordshop.core.enums import SyncMode
from recordshop.core.security import get_current_username
from recordshop.dependencies import get_catalog_gateway, get_db
from recordshop.integrations.base import CatalogGateway
from recordshop.schemas.sync import ReconciliationReport
from recordshop.services.reconciler import CatalogReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/inventory", tags=["inventory"])


@router.post("/refresh", response_model=ReconciliationReport)
async def refresh_inventory(
    mode: SyncMode = Query(SyncMode.DELTA),
    db: AsyncSession = Depends(get_db),
    gateway: CatalogGateway = Depends(get_catalog_gateway),
    username: str = Depends(get_current_username),
):
    """Run a reconciliation against Discogs now. 409 while another run is in progress."""
    logger.info(f"Manual {mode.value} inventory refresh requested by {username}")
    reconciler = CatalogReconciler(db, gateway)
    return await reconciler.reconcile(mode, trigger="api")
