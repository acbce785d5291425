"""Save/load of the whole finance state as a versioned record, with format migration"""

import logging
import re
from typing import Any, Dict, List, Optional

from farm_finance.domain.credit_events import EVENT_TYPES
from farm_finance.domain.credit_profile import PaymentStats
from farm_finance.domain.deal import Deal
from farm_finance.domain.exceptions import CorruptRecordError
from farm_finance.domain.models import (
    CreditEventEntry,
    FinanceStatistics,
    GameDate,
    PaymentRecord,
    PaymentStatus,
)
from farm_finance.services.registry import DealRegistry

SAVE_VERSION = 2

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

# v1 flat deal attributes that moved into nested blocks
_V1_ITEM_KEYS = {"itemType": "kind", "itemId": "id", "itemName": "name"}
_V1_LEASE_KEYS = ("residualValue", "securityDeposit", "depreciation", "tradeInValue")


def _snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _period_dict(period: Optional[GameDate]) -> Optional[Dict[str, int]]:
    return period.to_dict() if period is not None else None


# -- Serialize ---------------------------------------------------------------


def serialize(registry: DealRegistry) -> Dict[str, Any]:
    """
    Snapshot the registry into a plain dict.

    Credit events and payment logs are trimmed to their saved windows; the
    lifetime counters are kept whole so the score survives the trim.
    """
    config = registry.config
    accounts: Dict[str, Dict[str, Any]] = {}

    def account(account_id: str) -> Dict[str, Any]:
        return accounts.setdefault(account_id, {})

    for account_id in registry.accounts():
        account(account_id)["deals"] = [d.to_record() for d in registry.get_deals_for_account(account_id)]

    for account_id in registry.events.accounts():
        entries = registry.events.get_history(account_id, limit=config.saved_event_window)
        account(account_id)["credit_events"] = {
            "adjustment": registry.events.get_score_adjustment(account_id),
            # Saved oldest first so a reload appends in the original order
            "events": [
                {
                    "event_type": e.event_type,
                    "change": e.change,
                    "details": e.details,
                    "period": e.period.to_dict(),
                }
                for e in reversed(entries)
            ],
        }

    for profile in registry.profiles:
        stats = profile.stats
        account(profile.account_id)["payment_history"] = {
            "counters": {
                "total_payments": stats.total_payments,
                "on_time_payments": stats.on_time_payments,
                "late_payments": stats.late_payments,
                "missed_payments": stats.missed_payments,
                "current_streak": stats.current_streak,
                "longest_streak": stats.longest_streak,
                "last_missed_index": stats.last_missed_index,
            },
            "payments": [
                {
                    "status": p.status.value,
                    "amount": p.amount,
                    "period": p.period.to_dict(),
                    "deal_id": p.deal_id,
                    "deal_kind": p.deal_kind,
                }
                for p in profile.recent_payments(config.saved_payment_window)
            ],
        }

    for account_id, stats in registry.statistics.items():
        account(account_id)["statistics"] = {name: getattr(stats, name) for name in FinanceStatistics.field_names()}

    return {
        "version": SAVE_VERSION,
        "next_deal_id": registry.next_deal_id,
        "last_processed_period": (
            {"year": registry.last_processed_period[0], "month": registry.last_processed_period[1]}
            if registry.last_processed_period is not None
            else None
        ),
        "today": _period_dict(registry.today),
        "accounts": accounts,
    }


# -- Restore -----------------------------------------------------------------


def restore(registry: DealRegistry, data: Dict[str, Any]) -> int:
    """
    Replace the registry's state with a saved record.

    Older formats are migrated first. A corrupt deal record is skipped with a
    warning and loading continues. Loaded deals emit no credit events.
    Returns the number of deals loaded.
    """
    data = migrate_save(data)
    registry.clear()

    loaded = 0
    for account_id, block in (data.get("accounts") or {}).items():
        account_id = str(account_id)

        for record in block.get("deals") or []:
            try:
                deal = Deal.from_record(record)
            except (CorruptRecordError, TypeError, ValueError) as e:
                logging.warning(
                    f"Skipping corrupt deal record: {e}",
                    extra={"account_id": account_id, "deal_id": (record or {}).get("id")},
                )
                continue
            if not deal.account_id:
                deal.account_id = account_id
            if deal.id in registry.deals_by_id:
                logging.warning(
                    f"Skipping duplicate deal record: {deal.id}",
                    extra={"account_id": account_id, "deal_id": deal.id},
                )
                continue
            registry.index_deal(deal)
            loaded += 1

        if "credit_events" in block:
            _restore_events(registry, account_id, block["credit_events"])
        if "payment_history" in block:
            _restore_payments(registry, account_id, block["payment_history"])
        if "statistics" in block:
            _restore_statistics(registry, account_id, block["statistics"])

    registry.next_deal_id = max(registry.next_deal_id, int(data.get("next_deal_id") or 1))

    last = data.get("last_processed_period")
    if last:
        registry.last_processed_period = (int(last["year"]), int(last["month"]))
    if data.get("today"):
        registry.today = GameDate.from_dict(data["today"])

    logging.info(
        "Finance state restored",
        extra={"deals_loaded": loaded, "accounts": len(data.get("accounts") or {})},
    )
    return loaded


def _restore_events(registry: DealRegistry, account_id: str, block: Dict[str, Any]) -> None:
    entries: List[CreditEventEntry] = []
    for raw in block.get("events") or []:
        event_type = raw.get("event_type", "UNKNOWN")
        info = EVENT_TYPES.get(event_type)
        if info is None:
            logging.warning(
                f"Unknown credit event type in save: {event_type}",
                extra={"account_id": account_id, "event_type": event_type},
            )
        entries.append(
            CreditEventEntry(
                event_type=event_type,
                name=info[0] if info else event_type,
                change=int(raw.get("change", 0)),
                details=raw.get("details", ""),
                period=GameDate.from_dict(raw.get("period")),
            )
        )
    registry.events.restore_account(account_id, entries, int(block.get("adjustment", 0)))


def _restore_payments(registry: DealRegistry, account_id: str, block: Dict[str, Any]) -> None:
    profile = registry.profiles.get(account_id)
    profile.clear()

    counters = block.get("counters") or {}
    profile.stats = PaymentStats(**{name: int(counters.get(name, 0)) for name in PaymentStats.__dataclass_fields__})

    for raw in block.get("payments") or []:
        try:
            status = PaymentStatus(raw.get("status", PaymentStatus.ON_TIME.value))
        except ValueError:
            logging.warning(
                f"Unknown payment status in save: {raw.get('status')}",
                extra={"account_id": account_id},
            )
            continue
        profile.payments.append(
            PaymentRecord(
                status=status,
                amount=float(raw.get("amount", 0.0)),
                period=GameDate.from_dict(raw.get("period")),
                deal_id=raw.get("deal_id", ""),
                deal_kind=raw.get("deal_kind", "unknown"),
            )
        )


def _restore_statistics(registry: DealRegistry, account_id: str, block: Dict[str, Any]) -> None:
    stats = registry.get_statistics(account_id)
    known = set(FinanceStatistics.field_names())
    for name, value in block.items():
        if name not in known:
            logging.warning(f"Unknown statistic in save: {name}", extra={"account_id": account_id})
            continue
        setattr(stats, name, type(getattr(stats, name))(value))


# -- Migration ---------------------------------------------------------------


def migrate_save(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Bring a saved record up to the current version.

    Records without a version are the original flat layout (version 1):
    camelCase attributes, integer deal types, per-farm credit blocks.
    """
    version = int(data.get("version", 1))
    if version > SAVE_VERSION:
        logging.warning(
            f"Save version {version} is newer than supported version {SAVE_VERSION}",
            extra={"save_version": version},
        )
        return data
    if version == 1:
        data = _migrate_v1(data)
    return data


def _migrate_v1(data: Dict[str, Any]) -> Dict[str, Any]:
    accounts: Dict[str, Dict[str, Any]] = {}

    def account(farm_id: Any) -> Dict[str, Any]:
        return accounts.setdefault(str(farm_id), {})

    for raw in data.get("deals") or []:
        record = _migrate_v1_deal(raw)
        account(record.get("account_id", "")).setdefault("deals", []).append(record)

    for farm in data.get("creditHistory") or []:
        account(farm.get("farmId"))["credit_events"] = {
            "adjustment": int(farm.get("adjustment", 0)),
            "events": [
                {
                    "event_type": e.get("type", "UNKNOWN"),
                    "change": int(e.get("change", 0)),
                    "details": e.get("details", ""),
                    "period": {"year": e.get("year", 1), "month": e.get("period", 1), "day": 1},
                }
                for e in farm.get("entries") or []
            ],
        }

    for farm in data.get("paymentTracker") or []:
        account(farm.get("farmId"))["payment_history"] = {
            "counters": {_snake(k): v for k, v in (farm.get("stats") or {}).items()},
            "payments": [
                {
                    "status": p.get("status", "on_time"),
                    "amount": p.get("amount", 0),
                    "period": {"year": p.get("year", 1), "month": p.get("period", 1), "day": 1},
                    "deal_id": p.get("dealId", ""),
                    "deal_kind": p.get("dealType") or "unknown",
                }
                for p in farm.get("payments") or []
            ],
        }

    for farm in data.get("statistics") or []:
        account(farm.get("farmId"))["statistics"] = {
            _snake(k): v for k, v in farm.items() if k != "farmId"
        }

    logging.info("Migrated save from version 1", extra={"accounts": len(accounts)})
    return {
        "version": SAVE_VERSION,
        "next_deal_id": data.get("nextDealId", 1),
        "last_processed_period": None,
        "accounts": accounts,
    }


def _migrate_v1_deal(raw: Dict[str, Any]) -> Dict[str, Any]:
    record: Dict[str, Any] = {}
    item: Dict[str, Any] = {}
    lease: Dict[str, Any] = {}

    for key, value in raw.items():
        if key in _V1_ITEM_KEYS:
            item[_V1_ITEM_KEYS[key]] = value
        elif key in _V1_LEASE_KEYS:
            lease[_snake(key)] = value
        elif key == "dealType":
            record["deal_kind"] = value  # Integer code, resolved by Deal.from_record
        elif key == "farmId":
            record["account_id"] = str(value)
        elif key == "objectId":
            item["asset_ref"] = str(value)
        elif key in ("createdDate", "createdMonth", "createdYear"):
            continue
        elif key == "collateralItems":
            record["collateral"] = [
                {
                    "asset_id": str(c.get("vehicleId", "")),
                    "reference": str(c.get("objectId", "")),
                    "name": c.get("name", ""),
                    "value": c.get("value", 0),
                }
                for c in value or []
            ]
        elif key == "repossessedItems":
            record["repossessed_items"] = [
                {
                    "asset_id": str(r.get("vehicleId", "")),
                    "reference": str(r.get("objectId", "")),
                    "name": r.get("name", ""),
                    "value": r.get("value", 0),
                    "repossessed_on": {
                        "day": r.get("repossessedDate", 1),
                        "month": r.get("repossessedMonth", 1),
                        "year": r.get("repossessedYear", 1),
                    },
                    "not_found": bool(r.get("notFound", False)),
                }
                for r in value or []
            ]
        else:
            record[_snake(key)] = value

    record["created_at"] = {
        "day": raw.get("createdDate", 1),
        "month": raw.get("createdMonth", 1),
        "year": raw.get("createdYear", 1),
    }
    if item:
        record["item"] = item
    if lease:
        record["lease"] = lease
    return record
