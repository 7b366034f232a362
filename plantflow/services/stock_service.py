"""
Stock Ledger Service - single write path for stock movements

Every movement inserts exactly one ledger entry and applies the same signed
quantity to the (item_code, warehouse) balance row, inside one unit of work.
Nothing else in the package writes StockBalance.current_balance.
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy import func, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from plantflow.core import settings, transaction, ValidationError, ConflictError
from plantflow.models import LedgerEntry, StockBalance, StockAnnotation, Direction, PostingType

logger = logging.getLogger(__name__)

# Signed quantity of a ledger row, usable inside SQL aggregates
SIGNED_QUANTITY = case(
    (LedgerEntry.direction == Direction.IN.value, LedgerEntry.quantity),
    (LedgerEntry.direction == Direction.OUT.value, -LedgerEntry.quantity),
    else_=LedgerEntry.quantity,
)


class StockLedgerService:
    """Ledger store & balance projection"""

    @staticmethod
    def signed_quantity(direction: str, quantity: int) -> int:
        if direction == Direction.IN.value:
            return quantity
        if direction == Direction.OUT.value:
            return -quantity
        return quantity

    @staticmethod
    def _validate_movement(direction: str, quantity: int, item_code: str, warehouse: str) -> None:
        errors = []
        if not item_code:
            errors.append({"field": "item_code", "message": "Item code is required"})
        if not warehouse:
            errors.append({"field": "warehouse", "message": "Warehouse is required"})
        if direction not in {d.value for d in Direction}:
            errors.append({"field": "direction", "message": f"Unknown direction: {direction}"})
        elif direction == Direction.ADJUSTMENT.value:
            if quantity == 0:
                errors.append({"field": "quantity", "message": "Adjustment quantity cannot be zero"})
        elif quantity is None or quantity <= 0:
            errors.append({"field": "quantity", "message": f"{direction} quantity must be positive"})
        if errors:
            raise ValidationError(errors)

    @staticmethod
    def _lock_balance(db: Session, item_code: str, warehouse: str) -> StockBalance:
        """Fetch the balance row FOR UPDATE, creating it at zero on first posting"""
        query = db.query(StockBalance).filter(
            StockBalance.item_code == item_code,
            StockBalance.warehouse == warehouse
        ).with_for_update()
        balance = query.first()

        if balance is None:
            # A concurrent first posting may insert the same row; the savepoint keeps our work
            savepoint = db.begin_nested()
            try:
                balance = StockBalance(item_code=item_code, warehouse=warehouse, current_balance=0)
                db.add(balance)
                db.flush()
                savepoint.commit()
            except IntegrityError:
                savepoint.rollback()
                logger.info(f"Balance row for {item_code} @ {warehouse} created concurrently, re-reading")
                balance = query.populate_existing().one()
        return balance

    @staticmethod
    def post_movement(
        db: Session,
        item_code: str,
        warehouse: Optional[str],
        direction: str,
        quantity: int,
        posting_type: Optional[str] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        reference_number: Optional[str] = None,
        remarks: Optional[str] = None,
        created_by: Optional[UUID] = None
    ) -> LedgerEntry:
        """Insert one ledger entry and move the matching balance by the same amount"""
        warehouse = warehouse or settings.DEFAULT_WAREHOUSE
        direction = getattr(direction, "value", direction)
        StockLedgerService._validate_movement(direction, quantity, item_code, warehouse)

        if posting_type is None:
            posting_type = {
                Direction.IN.value: PostingType.INWARD.value,
                Direction.OUT.value: PostingType.OUTWARD.value,
            }.get(direction, PostingType.ADJUSTMENT.value)

        with transaction(db):
            balance = StockLedgerService._lock_balance(db, item_code, warehouse)
            delta = StockLedgerService.signed_quantity(direction, quantity)
            new_balance = balance.current_balance + delta

            if new_balance < 0 and delta < 0:
                if not settings.ALLOW_NEGATIVE_STOCK:
                    raise ConflictError(
                        f"Insufficient stock for {item_code} at {warehouse}: "
                        f"balance {balance.current_balance}, requested {abs(delta)}",
                        details={"item_code": item_code, "warehouse": warehouse,
                                 "current_balance": balance.current_balance, "requested": abs(delta)},
                    )
                logger.warning(f"Stock for {item_code} at {warehouse} goes negative: {new_balance}")

            now = datetime.now(timezone.utc)
            balance.current_balance = new_balance
            balance.last_movement_at = now

            entry = LedgerEntry(
                item_code=item_code,
                warehouse=warehouse,
                direction=direction,
                posting_type=posting_type,
                quantity=quantity,
                reference_type=reference_type,
                reference_id=str(reference_id) if reference_id is not None else None,
                reference_number=reference_number,
                balance_after=new_balance,
                remarks=remarks,
                created_at=now,
                created_by=created_by
            )
            db.add(entry)
            db.flush()

        logger.info(f"Stock {direction} {quantity} {item_code}@{warehouse} ({reference_type} {reference_id}) -> {new_balance}")
        return entry

    @staticmethod
    def annotate(
        db: Session,
        item_code: str,
        warehouse: Optional[str],
        posting_type: str,
        quantity: int,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        remarks: Optional[str] = None
    ) -> StockAnnotation:
        """Record an audit-only posting; stock on hand is untouched"""
        annotation = StockAnnotation(
            item_code=item_code,
            warehouse=warehouse or settings.DEFAULT_WAREHOUSE,
            posting_type=posting_type,
            quantity=quantity,
            reference_type=reference_type,
            reference_id=str(reference_id) if reference_id is not None else None,
            remarks=remarks
        )
        with transaction(db):
            db.add(annotation)
            db.flush()
        return annotation

    @staticmethod
    def adjust_stock(
        db: Session,
        item_code: str,
        warehouse: Optional[str],
        quantity: int,
        remarks: Optional[str] = None,
        created_by: Optional[UUID] = None
    ) -> LedgerEntry:
        """Manual stock adjustment (signed quantity)"""
        return StockLedgerService.post_movement(
            db, item_code, warehouse, Direction.ADJUSTMENT.value, quantity,
            posting_type=PostingType.ADJUSTMENT.value,
            reference_type="MANUAL",
            remarks=remarks,
            created_by=created_by
        )

    @staticmethod
    def get_balance(db: Session, item_code: str, warehouse: Optional[str] = None) -> int:
        balance = db.query(StockBalance).filter(
            StockBalance.item_code == item_code,
            StockBalance.warehouse == (warehouse or settings.DEFAULT_WAREHOUSE)
        ).first()
        return balance.current_balance if balance else 0

    @staticmethod
    def get_balances(
        db: Session,
        item_code: Optional[str] = None,
        warehouse: Optional[str] = None
    ) -> List[StockBalance]:
        query = db.query(StockBalance)
        if item_code:
            query = query.filter(StockBalance.item_code == item_code)
        if warehouse:
            query = query.filter(StockBalance.warehouse == warehouse)
        return query.order_by(StockBalance.item_code, StockBalance.warehouse).all()

    @staticmethod
    def get_ledger(
        db: Session,
        item_code: Optional[str] = None,
        warehouse: Optional[str] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        limit: int = 100
    ) -> List[LedgerEntry]:
        """Most recent ledger entries first"""
        query = db.query(LedgerEntry)
        if item_code:
            query = query.filter(LedgerEntry.item_code == item_code)
        if warehouse:
            query = query.filter(LedgerEntry.warehouse == warehouse)
        if reference_type:
            query = query.filter(LedgerEntry.reference_type == reference_type)
        if reference_id is not None:
            query = query.filter(LedgerEntry.reference_id == str(reference_id))
        return query.order_by(LedgerEntry.created_at.desc()).limit(limit).all()

    @staticmethod
    def ledger_sum(db: Session, item_code: str, warehouse: Optional[str] = None) -> int:
        """Signed sum of all ledger entries for one item/warehouse pair"""
        total = db.query(func.coalesce(func.sum(SIGNED_QUANTITY), 0)).filter(
            LedgerEntry.item_code == item_code,
            LedgerEntry.warehouse == (warehouse or settings.DEFAULT_WAREHOUSE)
        ).scalar()
        return int(total or 0)

    @staticmethod
    def posted_quantity(
        db: Session,
        reference_type: str,
        reference_id: str,
        item_code: str,
        warehouse: Optional[str] = None
    ) -> int:
        """Net quantity already posted to the ledger for one reference document"""
        db.flush()
        query = db.query(func.coalesce(func.sum(SIGNED_QUANTITY), 0)).filter(
            LedgerEntry.reference_type == reference_type,
            LedgerEntry.reference_id == str(reference_id),
            LedgerEntry.item_code == item_code
        )
        if warehouse:
            query = query.filter(LedgerEntry.warehouse == warehouse)
        return int(query.scalar() or 0)

    @staticmethod
    def annotated_quantity(
        db: Session,
        posting_type: str,
        reference_type: str,
        reference_id: str,
        item_code: str
    ) -> int:
        db.flush()
        total = db.query(func.coalesce(func.sum(StockAnnotation.quantity), 0)).filter(
            StockAnnotation.posting_type == posting_type,
            StockAnnotation.reference_type == reference_type,
            StockAnnotation.reference_id == str(reference_id),
            StockAnnotation.item_code == item_code
        ).scalar()
        return int(total or 0)

    @staticmethod
    def recompute_balance(db: Session, item_code: str, warehouse: Optional[str] = None) -> StockBalance:
        """Rebuild one balance row from the ledger"""
        warehouse = warehouse or settings.DEFAULT_WAREHOUSE
        with transaction(db):
            balance = StockLedgerService._lock_balance(db, item_code, warehouse)
            expected = StockLedgerService.ledger_sum(db, item_code, warehouse)
            if balance.current_balance != expected:
                logger.warning(
                    f"Rebuilding balance {item_code}@{warehouse}: {balance.current_balance} -> {expected}"
                )
                balance.current_balance = expected
            db.flush()
        return balance

    @staticmethod
    def verify_balances(db: Session) -> List[Dict]:
        """List item/warehouse pairs whose cached balance differs from the ledger sum"""
        ledger_totals = {
            (row.item_code, row.warehouse): int(row.total or 0)
            for row in db.query(
                LedgerEntry.item_code,
                LedgerEntry.warehouse,
                func.sum(SIGNED_QUANTITY).label("total")
            ).group_by(LedgerEntry.item_code, LedgerEntry.warehouse).all()
        }
        cached = {
            (b.item_code, b.warehouse): b.current_balance
            for b in db.query(StockBalance).all()
        }

        mismatches = []
        for key in sorted(set(ledger_totals) | set(cached)):
            ledger_total = ledger_totals.get(key, 0)
            balance = cached.get(key)
            if balance != ledger_total:
                mismatches.append({
                    "item_code": key[0],
                    "warehouse": key[1],
                    "current_balance": balance,
                    "ledger_total": ledger_total,
                })
        return mismatches

    @staticmethod
    def get_stock_summary(
        db: Session,
        warehouse: Optional[str] = None,
        search: Optional[str] = None
    ) -> List[Dict]:
        """Stock summary by item and warehouse"""
        query = db.query(StockBalance)
        if warehouse:
            query = query.filter(StockBalance.warehouse == warehouse)
        if search:
            query = query.filter(StockBalance.item_code.ilike(f"%{search}%"))

        return [
            {
                "item_code": b.item_code,
                "warehouse": b.warehouse,
                "current_balance": b.current_balance,
                "last_movement_at": b.last_movement_at.isoformat() if b.last_movement_at else None,
            }
            for b in query.order_by(StockBalance.item_code).all()
        ]
