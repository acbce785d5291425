"""Data access layer for saved finance state"""

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from farm_finance.infrastructure.database.models import SaveGame


class SaveGameRepository:
    """Repository for savegame slots"""

    def __init__(self, db: Session):
        self.db = db

    def save(self, slot: str, payload: Dict[str, Any]) -> SaveGame:
        """Insert or overwrite a slot with a serialized registry"""
        deal_count = sum(len(block.get("deals") or []) for block in (payload.get("accounts") or {}).values())

        record = self.get(slot)
        if record is None:
            record = SaveGame(slot=slot, version=payload.get("version", 1), payload=payload, deal_count=deal_count)
            self.db.add(record)
        else:
            record.version = payload.get("version", 1)
            record.payload = payload
            record.deal_count = deal_count

        self.db.flush()  # Surface constraint errors before commit
        return record

    def get(self, slot: str) -> Optional[SaveGame]:
        return self.db.query(SaveGame).filter(SaveGame.slot == slot).first()

    def load(self, slot: str) -> Optional[Dict[str, Any]]:
        """Serialized payload for a slot, or None when the slot is empty"""
        record = self.get(slot)
        return dict(record.payload) if record is not None else None

    def list_slots(self, limit: int = 20) -> List[SaveGame]:
        """Most recently updated slots first"""
        return (
            self.db.query(SaveGame)
            .order_by(SaveGame.updated_at.desc())
            .limit(limit)
            .all()
        )
