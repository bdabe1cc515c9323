from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from services.sheets_service.dependencies import get_sheets_sync_service
from services.sheets_service.sync import SheetsSyncService
from shared.config.database import get_db
from shared.security import verify_cron_request

from .schemas import SweepResponse
from .service import SyncRetryService

# Scheduler-only: every route requires the shared cron secret
router = APIRouter(
    prefix="/api/cron",
    tags=["Cron"],
    dependencies=[Depends(verify_cron_request)],
)


@router.post("/sync-sheets", response_model=SweepResponse)
async def sync_sheets(
    db: AsyncSession = Depends(get_db),
    sync_service: SheetsSyncService = Depends(get_sheets_sync_service),
):
    result = await SyncRetryService.sweep(db, sync_service)
    return result.to_response()
