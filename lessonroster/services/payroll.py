"""
Teacher payroll: loads the facts for a period, runs the payment engine and
persists the monthly summary.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import date
from typing import List, Optional, Union

from pendulum import DateTime

from ..domain.exceptions import NotFoundError, ValidationError
from ..domain.models import (
    LessonStatus,
    PaymentStatement,
    PaymentStatus,
    Teacher,
    TeacherPaymentMonth,
    TeacherStatus,
)
from ..domain.payment_engine import Amount, PaymentEngine, to_decimal
from .repository import LessonRepositoryProtocol

logger = logging.getLogger(__name__)


class PayrollService:
    """Per-teacher payment statements and month overrides."""

    def __init__(self, repository: LessonRepositoryProtocol, engine: PaymentEngine) -> None:
        self._repository = repository
        self._engine = engine

    async def teacher_statement(
        self,
        teacher_id: str,
        *,
        now: DateTime,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> PaymentStatement:
        """
        Compute and persist the statement of one teacher.

        Args:
            teacher_id: Teacher to pay
            now: Reference instant; selects the month when none is given
            year: Optional statement year
            month: Optional statement month (1-12)

        Returns:
            PaymentStatement with registered, estimated and payable figures
        """
        teacher = await self._repository.get_teacher(teacher_id)
        if teacher is None:
            raise NotFoundError("Teacher", teacher_id)
        return await self._statement_for(teacher, now=now, year=year, month=month)

    async def payroll_overview(
        self,
        *,
        now: DateTime,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> List[PaymentStatement]:
        """Statements for every active teacher, ordered by name."""
        teachers = await self._repository.list_teachers(status=TeacherStatus.ACTIVE)
        statements = await asyncio.gather(
            *(self._statement_for(teacher, now=now, year=year, month=month) for teacher in teachers)
        )
        return sorted(statements, key=lambda statement: (statement.teacher_name.lower(), statement.teacher_id))

    async def set_payment_month(
        self,
        teacher_id: str,
        year: int,
        month: int,
        *,
        payment_status: Union[PaymentStatus, str, None] = None,
        period_amount: Amount = None,
        extra_amount: Amount = None,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
    ) -> None:
        """Create or update the override of one teacher's month."""
        if not 1 <= month <= 12:
            raise ValidationError(f"month must be between 1 and 12, got {month}")
        if await self._repository.get_teacher(teacher_id) is None:
            raise NotFoundError("Teacher", teacher_id)

        current = await self._repository.get_payment_month_override(teacher_id, year, month)
        if current is None:
            current = TeacherPaymentMonth(teacher_id=teacher_id, year=year, month=month)

        changes = {}
        if payment_status is not None:
            value = payment_status.value if isinstance(payment_status, PaymentStatus) else str(payment_status)
            is_paid = value.upper() == PaymentStatus.PAGO.value
            changes["payment_status"] = PaymentStatus.PAGO if is_paid else PaymentStatus.EM_ABERTO
        if period_amount is not None:
            changes["period_amount"] = to_decimal(period_amount)
        if extra_amount is not None:
            changes["extra_amount"] = to_decimal(extra_amount)
        if period_start is not None:
            changes["period_start"] = period_start
        if period_end is not None:
            changes["period_end"] = period_end

        updated = replace(current, **changes)
        if updated.period_start and updated.period_end and updated.period_end < updated.period_start:
            raise ValidationError("period_end must not be before period_start")

        await self._repository.save_payment_month(updated)
        status = updated.payment_status
        logger.info("Payment month %04d-%02d of teacher %s set to %s", year, month, teacher_id, status.value)

    async def _statement_for(
        self,
        teacher: Teacher,
        *,
        now: DateTime,
        year: Optional[int],
        month: Optional[int],
    ) -> PaymentStatement:
        clock = self._engine.clock
        if year is None and month is None:
            local_now = clock.localize(now)
            year, month = local_now.year, local_now.month

        override = await self._repository.get_payment_month_override(teacher.id, year, month)
        terms = self._engine.resolve_terms(teacher, now, year=year, month=month, override=override)

        records, lessons, holidays = await asyncio.gather(
            self._repository.get_confirmed_records(teacher.id, terms.period_start, terms.period_end),
            self._repository.get_teacher_lessons(
                teacher.id, from_date=terms.period_start, statuses=(LessonStatus.CONFIRMED,)
            ),
            self._repository.get_holidays(
                clock.date_key(terms.period_start), clock.date_key(terms.period_end)
            ),
        )

        result = self._engine.compute_payable(
            teacher.id,
            terms.period_start,
            terms.period_end,
            records,
            holidays,
            terms.hourly_rate,
            terms.period_amount,
            terms.extra_amount,
        )
        estimated = self._engine.estimated_hours(
            teacher.id, terms.period_start, terms.period_end, lessons, holidays
        )

        await self._repository.upsert_payment_month_summary(
            teacher.id,
            terms.year,
            terms.month,
            result.registered_hours,
            result.payable_amount,
            terms.payment_status,
        )
        logger.info(
            "Teacher %s %04d-%02d: %s registered h, %s estimated h, payable %s",
            teacher.id, terms.year, terms.month,
            result.registered_hours, estimated.hours, result.payable_amount,
        )
        return PaymentStatement(
            teacher_id=teacher.id,
            teacher_name=teacher.name,
            terms=terms,
            result=result,
            estimated=estimated,
        )
