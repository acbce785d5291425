"""Period and state endpoints - monthly batch trigger, state broadcast, savegames"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from farm_finance.api.dependencies import get_registry, get_request_id
from farm_finance.api.v1.schemas import BatchReportResponse, PeriodRequest, SaveGameResponse
from farm_finance.domain.models import GameDate
from farm_finance.infrastructure.database.repositories import SaveGameRepository
from farm_finance.infrastructure.database.session import get_db
from farm_finance.services import persistence
from farm_finance.services.registry import DealRegistry

router = APIRouter()


@router.post("/periods", response_model=BatchReportResponse)
async def period_changed(body: PeriodRequest, registry: DealRegistry = Depends(get_registry)):
    """
    Signal a new billing period and run the monthly batch.

    A repeated or stale period returns skipped=true without charging again.
    """
    report = registry.on_period_changed(GameDate(year=body.year, month=body.month))
    return BatchReportResponse(
        year=report.period.year,
        month=report.period.month,
        skipped=report.skipped,
        processed=report.processed,
        paid_off=report.paid_off,
        defaulted=report.defaulted,
        removed=report.removed,
        lease_term_complete=report.lease_term_complete,
    )


@router.get("/state")
async def get_state(registry: DealRegistry = Depends(get_registry)) -> Dict[str, Any]:
    """Full finance state, broadcast to observers when they join"""
    return persistence.serialize(registry)


@router.post("/savegames/{slot}", response_model=SaveGameResponse)
async def save_game(
    slot: str,
    request: Request,
    registry: DealRegistry = Depends(get_registry),
    db: Session = Depends(get_db),
):
    request_id = get_request_id(request)
    try:
        record = SaveGameRepository(db).save(slot, persistence.serialize(registry))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logging.error(f"Savegame write failed: {e}", extra={"request_id": request_id, "slot": slot})
        raise HTTPException(status_code=500, detail="Savegame write failed")

    logging.info("Savegame written", extra={"request_id": request_id, "slot": slot, "deal_count": record.deal_count})
    return SaveGameResponse(slot=record.slot, version=record.version, deal_count=record.deal_count)


@router.post("/savegames/{slot}/load", response_model=SaveGameResponse)
async def load_game(
    slot: str,
    registry: DealRegistry = Depends(get_registry),
    db: Session = Depends(get_db),
):
    """Replace the hosted state with a saved slot"""
    if not registry.is_authority:
        raise HTTPException(status_code=403, detail="Only the authority loads savegames")

    payload = SaveGameRepository(db).load(slot)
    if payload is None:
        raise HTTPException(status_code=404, detail="Savegame not found")

    loaded = persistence.restore(registry, payload)
    return SaveGameResponse(slot=slot, version=int(payload.get("version", 1)), deal_count=loaded)


@router.get("/savegames", response_model=List[SaveGameResponse])
async def list_savegames(db: Session = Depends(get_db)):
    return [
        SaveGameResponse(slot=r.slot, version=r.version, deal_count=r.deal_count)
        for r in SaveGameRepository(db).list_slots()
    ]
