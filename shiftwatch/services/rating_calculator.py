"""
Rating Calculator

Recomputes an employee's bounded rating for one period from the full set of
violations recorded in it, and persists exactly one rating row per
(employee, period_start, period_end).

Architecture:
- Each recalculation is one unit of work: lock employee, read violations,
  upsert rating, apply status side effect, commit.
- Transient storage failures are retried after rollback.
- Batch recalculation isolates every employee as its own unit.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from shiftwatch.core.config import settings
from shiftwatch.core.exceptions import NotFoundError, StorageError, ValidationFailedError
from shiftwatch.core.timeutils import utc_now
from shiftwatch.models.employee import Employee, EmployeeStatus
from shiftwatch.models.employee_rating import EmployeeRating, RatingStatus
from shiftwatch.models.violation import Violation
from shiftwatch.services.periods import RatingPeriod

logger = logging.getLogger(__name__)

MAX_RATING = Decimal("100")
MIN_RATING = Decimal("0")
TERMINATION_THRESHOLD = Decimal("30")
WARNING_THRESHOLD = Decimal("50")
_CENTS = Decimal("0.01")


def clamp_rating(value: Decimal) -> Decimal:
    return min(max(value, MIN_RATING), MAX_RATING).quantize(_CENTS)


def compute_rating(penalties: Iterable[Any]) -> Decimal:
    """clamp(100 - sum(penalties), 0, 100)"""
    total = sum((Decimal(str(p)) for p in penalties), Decimal("0"))
    return clamp_rating(MAX_RATING - total)


def classify_tier(rating: Decimal) -> RatingStatus:
    if rating <= TERMINATION_THRESHOLD:
        return RatingStatus.TERMINATED
    if rating <= WARNING_THRESHOLD:
        return RatingStatus.WARNING
    return RatingStatus.ACTIVE


def to_finite_decimal(value: Any, field_name: str = "delta") -> Decimal:
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationFailedError(f"{field_name} must be a number", details={field_name: str(value)})
    if not number.is_finite():
        raise ValidationFailedError(f"{field_name} must be finite", details={field_name: str(value)})
    return number


@dataclass
class BatchResult:
    period: RatingPeriod
    processed: List[int] = field(default_factory=list)
    company_ids: set = field(default_factory=set)
    failures: List[Dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "processed_count": len(self.processed),
            "failed_count": len(self.failures),
            **self.period.as_dict(),
            "failures": self.failures,
        }


class RatingCalculator:
    def __init__(
        self,
        db: Session,
        clock: Callable = utc_now,
        retry_attempts: Optional[int] = None,
    ):
        self.db = db
        self.clock = clock
        self.retry_attempts = retry_attempts or settings.engine.storage_retry_attempts

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------
    def _run_unit(self, work: Callable[[], EmployeeRating]) -> EmployeeRating:
        retryer = Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
            retry=retry_if_exception_type(OperationalError),
            reraise=True,
        )
        try:
            return retryer(self._commit_unit, work)
        except OperationalError as e:
            logger.error(f"Rating storage unavailable after {self.retry_attempts} attempts: {e}")
            raise StorageError() from e

    def _commit_unit(self, work: Callable[[], EmployeeRating]) -> EmployeeRating:
        try:
            row = work()
            # Detached rows keep their loaded values and never reopen a transaction
            self.db.expunge(row)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return row

    def _lock_employee(self, employee_id: int) -> Employee:
        employee = self.db.query(Employee).filter(
            Employee.id == employee_id
        ).with_for_update().populate_existing().first()
        if not employee:
            raise NotFoundError("Employee", employee_id)
        return employee

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def _upsert(self, employee: Employee, period: RatingPeriod, rating: Decimal) -> EmployeeRating:
        status = classify_tier(rating)
        values = {
            "employee_id": employee.id,
            "company_id": employee.company_id,
            "period_start": period.start,
            "period_end": period.end,
            "rating": rating,
            "status": status.value,
            "updated_at": self.clock(),
        }
        dialect = self.db.get_bind().dialect.name
        if dialect in ("postgresql", "sqlite"):
            insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
            stmt = insert_fn(EmployeeRating).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["employee_id", "period_start", "period_end"],
                set_={
                    "company_id": stmt.excluded.company_id,
                    "rating": stmt.excluded.rating,
                    "status": stmt.excluded.status,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            self.db.execute(stmt)
        else:
            self._upsert_with_savepoint(values)

        if status == RatingStatus.TERMINATED:
            employee.status = EmployeeStatus.TERMINATED.value

        return self._find_rating(employee.id, period)

    def _upsert_with_savepoint(self, values: Dict[str, Any]):
        existing = self._find_rating(values["employee_id"], RatingPeriod(values["period_start"], values["period_end"]))
        if existing is None:
            try:
                with self.db.begin_nested():
                    self.db.add(EmployeeRating(**values))
                return
            except IntegrityError:
                # Lost the insert race; the row now exists
                existing = self._find_rating(
                    values["employee_id"], RatingPeriod(values["period_start"], values["period_end"])
                )
                if existing is None:
                    raise
        for key in ("company_id", "rating", "status", "updated_at"):
            setattr(existing, key, values[key])
        self.db.flush()

    def _find_rating(self, employee_id: int, period: RatingPeriod) -> Optional[EmployeeRating]:
        return self.db.query(EmployeeRating).filter(
            EmployeeRating.employee_id == employee_id,
            EmployeeRating.period_start == period.start,
            EmployeeRating.period_end == period.end,
        ).populate_existing().first()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def period_penalties(self, employee_id: int, period: RatingPeriod) -> List[Decimal]:
        lower, upper = period.bounds()
        rows = self.db.query(Violation.penalty).filter(
            Violation.employee_id == employee_id,
            Violation.created_at >= lower,
            Violation.created_at < upper,
        ).all()
        return [row[0] for row in rows]

    def recalculate(self, employee_id: int, period: RatingPeriod) -> EmployeeRating:
        """Recompute the period rating from scratch and upsert it."""
        def work():
            employee = self._lock_employee(employee_id)
            rating = compute_rating(self.period_penalties(employee_id, period))
            return self._upsert(employee, period, rating)

        row = self._run_unit(work)
        logger.info(
            f"Rating recalculated for employee {employee_id}: {row.rating} ({row.status})",
            extra={"employee_id": employee_id, **period.as_dict()}
        )
        return row

    def adjust(self, employee_id: int, period: RatingPeriod, delta: Any) -> EmployeeRating:
        """Additive manual correction: clamp(current + delta), current defaults to 100."""
        amount = to_finite_decimal(delta)

        def work():
            employee = self._lock_employee(employee_id)
            current = self.db.query(EmployeeRating).filter(
                EmployeeRating.employee_id == employee_id,
                EmployeeRating.period_start == period.start,
                EmployeeRating.period_end == period.end,
            ).with_for_update().populate_existing().first()
            base = Decimal(str(current.rating)) if current else MAX_RATING
            return self._upsert(employee, period, clamp_rating(base + amount))

        row = self._run_unit(work)
        logger.info(
            f"Rating adjusted by {amount} for employee {employee_id}: {row.rating} ({row.status})",
            extra={"employee_id": employee_id, **period.as_dict()}
        )
        return row

    def recalculate_many(
        self,
        employee_ids: Sequence[int],
        period: RatingPeriod,
        session_factory: Optional[sessionmaker] = None,
        max_workers: int = 1,
        batch_size: Optional[int] = None,
    ) -> BatchResult:
        """
        Recalculate a set of employees in chunks. With a session factory and
        more than one worker, each employee runs in its own session on a
        thread pool; otherwise they run sequentially on this session.
        """
        batch_size = batch_size or settings.engine.recalc_batch_size
        result = BatchResult(period=period)
        parallel = session_factory is not None and max_workers > 1

        # Release any open transaction before workers contend for locks
        self.db.commit()

        for offset in range(0, len(employee_ids), batch_size):
            chunk = employee_ids[offset:offset + batch_size]
            if parallel:
                self._run_chunk_parallel(chunk, period, session_factory, max_workers, result)
            else:
                for employee_id in chunk:
                    try:
                        row = self.recalculate(employee_id, period)
                        result.processed.append(employee_id)
                        result.company_ids.add(row.company_id)
                    except Exception as e:
                        logger.error(f"Recalculation failed for employee {employee_id}: {e}")
                        result.failures.append({"employee_id": employee_id, "error": str(e)})

        logger.info(
            f"Batch recalculation finished: {len(result.processed)} ok, {len(result.failures)} failed",
            extra=period.as_dict()
        )
        return result

    def _run_chunk_parallel(
        self,
        chunk: Sequence[int],
        period: RatingPeriod,
        session_factory: sessionmaker,
        max_workers: int,
        result: BatchResult,
    ):
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = {
                pool.submit(self._recalculate_isolated, session_factory, employee_id, period): employee_id
                for employee_id in chunk
            }
            for future in as_completed(futures):
                employee_id = futures[future]
                try:
                    company_id = future.result()
                    result.processed.append(employee_id)
                    result.company_ids.add(company_id)
                except Exception as e:
                    logger.error(f"Recalculation failed for employee {employee_id}: {e}")
                    result.failures.append({"employee_id": employee_id, "error": str(e)})

    def _recalculate_isolated(self, session_factory: sessionmaker, employee_id: int, period: RatingPeriod) -> int:
        db = session_factory()
        try:
            calculator = RatingCalculator(db, clock=self.clock, retry_attempts=self.retry_attempts)
            return calculator.recalculate(employee_id, period).company_id
        finally:
            db.close()
