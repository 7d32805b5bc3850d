from datetime import date, timedelta

import structlog

from envelope_budget.database.db_manager import DatabaseManager
from envelope_budget.database.account_dao import AccountDAO
from envelope_budget.database.budget_dao import BudgetDAO
from envelope_budget.database.checkpoint_dao import CheckpointDAO
from envelope_budget.database.recurring_dao import RecurringDAO
from envelope_budget.models.actor import Actor
from envelope_budget.models.recurring_rule import GenerationResult, RecurringRule
from envelope_budget.services.access import require_admin
from envelope_budget.services.errors import (
    ConcurrencyError,
    IntegrityViolation,
    ValidationError,
)
from envelope_budget.services.transaction_service import TransactionService
from envelope_budget.services.validation import (
    check_categorization,
    check_cents,
    check_date,
)
from envelope_budget.utils.constants import (
    DAY_INTERVALS,
    FREQUENCIES,
    MONTH_INTERVALS,
    TRANSACTION_TYPES,
)
from envelope_budget.utils.date_helpers import (
    add_months,
    clamp_day_to_month,
    format_date,
    today,
)

logger = structlog.get_logger(__name__)


class RecurringService:
    def __init__(
        self,
        db: DatabaseManager,
        recurring_dao: RecurringDAO,
        checkpoint_dao: CheckpointDAO,
        account_dao: AccountDAO,
        budget_dao: BudgetDAO,
        tx_service: TransactionService,
    ):
        self._db = db
        self._dao = recurring_dao
        self._checkpoint_dao = checkpoint_dao
        self._account_dao = account_dao
        self._budget_dao = budget_dao
        self._tx_service = tx_service

    def get_all(self) -> list[RecurringRule]:
        return self._dao.get_all()

    def get_active(self) -> list[RecurringRule]:
        return self._dao.get_active()

    def get_by_id(self, rule_id: int) -> RecurringRule | None:
        return self._dao.get_by_id(rule_id)

    def get_checkpoint(self) -> date | None:
        return self._checkpoint_dao.get()

    def create(
        self,
        actor: Actor,
        type_: str,
        amount_cents: int,
        account_id: int,
        frequency: str,
        start_date: date,
        day_of_month: int | None = None,
        day_of_week: int | None = None,
        end_date: date | None = None,
        auto_clear: bool = False,
        envelope_id: int | None = None,
        income_category_id: int | None = None,
        description: str = "",
    ) -> RecurringRule:
        require_admin(actor)
        self._validate(type_, amount_cents, frequency, start_date, end_date,
                       day_of_month, day_of_week, envelope_id, income_category_id)
        with self._db.transaction():
            self._tx_service.check_references(account_id, envelope_id, income_category_id)
            rule = self._dao.create(
                type_=type_, amount_cents=amount_cents, account_id=account_id,
                frequency=frequency, start_date=start_date, created_by=actor.user_id,
                day_of_month=day_of_month, day_of_week=day_of_week,
                end_date=end_date, auto_clear=bool(auto_clear),
                envelope_id=envelope_id, income_category_id=income_category_id,
                description=(description or "").strip(),
            )
        logger.info("recurring_rule_created", rule_id=rule.id, frequency=frequency,
                    by=actor.user_id)
        return rule

    def update(
        self,
        actor: Actor,
        rule_id: int,
        type_: str,
        amount_cents: int,
        account_id: int,
        frequency: str,
        start_date: date,
        day_of_month: int | None = None,
        day_of_week: int | None = None,
        end_date: date | None = None,
        auto_clear: bool = False,
        envelope_id: int | None = None,
        income_category_id: int | None = None,
        description: str = "",
        is_active: bool | None = None,
    ) -> RecurringRule:
        """Changes apply to future generation only; past occurrences stay as posted.

        is_active=None keeps the rule's current on/off state.
        """
        require_admin(actor)
        self._validate(type_, amount_cents, frequency, start_date, end_date,
                       day_of_month, day_of_week, envelope_id, income_category_id)
        with self._db.transaction():
            current = self._require(rule_id)
            if is_active is None:
                is_active = current.is_active
            self._tx_service.check_references(account_id, envelope_id, income_category_id)
            rule = self._dao.update(
                rule_id=rule_id, type_=type_, amount_cents=amount_cents,
                account_id=account_id, frequency=frequency, start_date=start_date,
                day_of_month=day_of_month, day_of_week=day_of_week,
                end_date=end_date, auto_clear=bool(auto_clear),
                envelope_id=envelope_id, income_category_id=income_category_id,
                description=(description or "").strip(), is_active=bool(is_active),
            )
        logger.info("recurring_rule_updated", rule_id=rule_id, by=actor.user_id)
        return rule

    def set_active(self, actor: Actor, rule_id: int, is_active: bool) -> RecurringRule:
        require_admin(actor)
        with self._db.transaction():
            self._require(rule_id)
            self._dao.set_active(rule_id, is_active)
            return self._dao.get_by_id(rule_id)

    def delete(self, actor: Actor, rule_id: int):
        """Generated transactions stay; their back-reference is cleared."""
        require_admin(actor)
        with self._db.transaction():
            self._require(rule_id)
            self._dao.delete(rule_id)
        logger.info("recurring_rule_deleted", rule_id=rule_id, by=actor.user_id)

    # ── Generation ───────────────────────────────────────────────────────────

    def generate_due(self, actor: Actor, reference_date: date | None = None) -> GenerationResult:
        """Post every occurrence dated after the checkpoint and on or before
        reference_date (default: today), then move the checkpoint to reference_date.
        A reference_date after today is clamped to today.

        Runs in one transaction: a concurrent caller waits for the write lock,
        then sees the advanced checkpoint and posts nothing.
        """
        require_admin(actor)
        through = min(reference_date, today()) if reference_date else today()
        with self._db.transaction():
            checkpoint = self._checkpoint_dao.get()
            if checkpoint is not None and checkpoint >= through:
                return GenerationResult(through_date=checkpoint)

            created = []
            for rule in self._dao.get_active():
                due_dates = self.occurrences(rule, checkpoint, through)
                if not due_dates:
                    continue
                skip_reason = self._skip_reason(rule)
                if skip_reason:
                    logger.warning("recurring_rule_skipped", rule_id=rule.id,
                                   reason=skip_reason, missed=len(due_dates))
                    continue
                for d in due_dates:
                    created.append(self._tx_service.post(
                        created_by=actor.user_id,
                        type_=rule.type,
                        amount_cents=rule.amount_cents,
                        date=d,
                        account_id=rule.account_id,
                        envelope_id=rule.envelope_id,
                        income_category_id=rule.income_category_id,
                        description=rule.description,
                        cleared=rule.auto_clear,
                        recurring_rule_id=rule.id,
                    ))

            if not self._checkpoint_dao.compare_and_set(checkpoint, through):
                raise ConcurrencyError(
                    "Recurring transactions were generated by another run; nothing was written."
                )
        logger.info("recurrence_generated", count=len(created),
                    after=format_date(checkpoint) if checkpoint else None,
                    through=format_date(through), by=actor.user_id)
        return GenerationResult(through_date=through, transactions=created)

    def occurrences(
        self, rule: RecurringRule, after: date | None, through: date
    ) -> list[date]:
        """Due dates strictly after `after` (None: no lower bound) and on or before
        `through`, clipped to the rule's start/end dates."""
        if not rule.is_active:
            return []
        lower = rule.start_date
        if after is not None:
            lower = max(lower, after + timedelta(days=1))
        upper = min(through, rule.end_date) if rule.end_date else through
        if lower > upper:
            return []
        return self._get_due_dates(rule, lower, upper)

    def next_due_date(self, rule: RecurringRule, after: date | None = None) -> date | None:
        """The first due date after `after` (default: today), or None if the rule has ended."""
        ref = after or today()
        # A year and a bit always contains the next yearly occurrence.
        dates = self.occurrences(rule, ref, ref + timedelta(days=400))
        return dates[0] if dates else None

    def _get_due_dates(self, rule: RecurringRule, start: date, end: date) -> list[date]:
        """All due dates in [start, end]; `start` is never before the rule's start_date."""
        result = []
        rule_start = rule.start_date

        if rule.frequency in DAY_INTERVALS:
            interval = DAY_INTERVALS[rule.frequency]
            anchor = rule_start
            if rule.frequency != "daily" and rule.day_of_week is not None:
                anchor += timedelta(days=(rule.day_of_week - rule_start.isoweekday()) % 7)
            current = self._first_interval_on_or_after(anchor, interval, start)
            while current <= end:
                result.append(current)
                current += timedelta(days=interval)

        elif rule.frequency in MONTH_INTERVALS:
            step = MONTH_INTERVALS[rule.frequency]
            target_day = rule.day_of_month or rule_start.day
            base = rule_start.replace(day=1)
            months_ahead = (start.year - base.year) * 12 + start.month - base.month
            k = max(0, months_ahead // step - 1)
            while True:
                current = self._pinned_day(add_months(base, k * step), target_day)
                if current > end:
                    break
                if current >= start:
                    result.append(current)
                k += 1

        return result

    @staticmethod
    def _pinned_day(month_start: date, target_day: int) -> date:
        """target_day in that month, clamped to its last day (31 -> Feb 28)."""
        return month_start.replace(
            day=clamp_day_to_month(month_start.year, month_start.month, target_day)
        )

    @staticmethod
    def _first_interval_on_or_after(anchor: date, interval: int, from_date: date) -> date:
        """Return the first date in the anchor + k*interval series that is >= from_date."""
        if from_date <= anchor:
            return anchor
        days_since = (from_date - anchor).days
        n = days_since // interval
        candidate = anchor + timedelta(days=n * interval)
        if candidate < from_date:
            candidate += timedelta(days=interval)
        return candidate

    def _skip_reason(self, rule: RecurringRule) -> str | None:
        account = self._account_dao.get_by_id(rule.account_id)
        if account is None or account.is_archived:
            return "account archived"
        if rule.envelope_id is not None:
            envelope = self._budget_dao.get_envelope(rule.envelope_id)
            if envelope is None or envelope.is_archived:
                return "envelope archived"
        return None

    def _require(self, rule_id: int) -> RecurringRule:
        rule = self._dao.get_by_id(rule_id)
        if rule is None:
            raise IntegrityViolation(f"Recurring rule {rule_id} not found.")
        return rule

    @staticmethod
    def _validate(
        type_, amount_cents, frequency, start_date, end_date,
        day_of_month, day_of_week, envelope_id, income_category_id,
    ):
        if type_ not in TRANSACTION_TYPES:
            raise ValidationError("type", "Type must be income or expense.")
        check_cents(amount_cents)
        if frequency not in FREQUENCIES:
            raise ValidationError("frequency", f"Frequency must be one of: {', '.join(FREQUENCIES)}.")
        check_date(start_date, "start_date")
        if end_date is not None:
            check_date(end_date, "end_date")
            if end_date < start_date:
                raise ValidationError("end_date", "End date cannot be before the start date.")
        check_categorization(type_, envelope_id, income_category_id)

        if frequency in MONTH_INTERVALS:
            if day_of_month is None:
                raise ValidationError("day_of_month", f"A {frequency} rule needs a day of the month.")
            if day_of_week is not None:
                raise ValidationError("day_of_week", f"A {frequency} rule cannot have a day of the week.")
        else:
            if day_of_month is not None:
                raise ValidationError("day_of_month", f"A {frequency} rule cannot have a day of the month.")
            if frequency == "daily" and day_of_week is not None:
                raise ValidationError("day_of_week", "A daily rule cannot have a day of the week.")

        if day_of_month is not None and (
            isinstance(day_of_month, bool) or not isinstance(day_of_month, int)
            or not 1 <= day_of_month <= 31
        ):
            raise ValidationError("day_of_month", "Day of month must be between 1 and 31.")
        if day_of_week is not None and (
            isinstance(day_of_week, bool) or not isinstance(day_of_week, int)
            or not 1 <= day_of_week <= 7
        ):
            raise ValidationError("day_of_week", "Day of week must be between 1 (Mon) and 7 (Sun).")
