"""Typed actions embedded in free text.

A chat assistant answers in prose and may embed JSON objects such as
``{"action": "add_vacation", "dates": ["2026-08-10"]}``.  Every object
carrying an ``action`` key is validated against the known action kinds;
anything else is ignored.
"""

from __future__ import annotations

import datetime
import json
import logging
from collections.abc import Iterable
from typing import Annotated, Literal, NamedTuple, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from ferias.holidays import Holiday
from ferias.optimizer import STRATEGIES
from ferias.planner import YearPlan
from ferias.workweek import parse_work_week

logger = logging.getLogger(__name__)


class AddVacation(BaseModel):
    action: Literal["add_vacation"]
    dates: list[datetime.date]


class RemoveVacation(BaseModel):
    action: Literal["remove_vacation"]
    dates: list[datetime.date]


class ClearOptimized(BaseModel):
    action: Literal["clear_optimized"]


class ClearAllVacations(BaseModel):
    action: Literal["clear_all_vacations"]


class UpdateConfig(BaseModel):
    action: Literal["update_config"]
    vacation_days: int | None = Field(default=None, ge=0)
    reserved_days: int | None = Field(default=None, ge=0)
    optimization_strategy: str | None = None
    work_week: list[str] | None = None

    @field_validator("optimization_strategy")
    @classmethod
    def _known_strategy(cls, value: str | None) -> str | None:
        if value is not None and value not in STRATEGIES:
            msg = f"unknown strategy {value!r}"
            raise ValueError(msg)
        return value

    @field_validator("work_week")
    @classmethod
    def _valid_work_week(cls, value: list[str] | None) -> list[str] | None:
        if value is not None:
            parse_work_week(value)
        return value


class Optimize(BaseModel):
    action: Literal["optimize"]


Action = Annotated[
    Union[AddVacation, RemoveVacation, ClearOptimized, ClearAllVacations, UpdateConfig, Optimize],
    Field(discriminator="action"),
]

_ACTION = TypeAdapter(Action)


class ActionResult(NamedTuple):
    action: BaseModel
    skipped_holidays: tuple[datetime.date, ...] = ()
    trigger_optimize: bool = False


def extract_actions(text: str) -> list[BaseModel]:
    """Every valid action object found in *text*, in order of appearance."""
    decoder = json.JSONDecoder()
    actions: list[BaseModel] = []
    pos = 0

    while True:
        start = text.find("{", pos)
        if start == -1:
            break
        try:
            obj, end = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            pos = start + 1
            continue

        if not isinstance(obj, dict) or "action" not in obj:
            pos = start + 1
            continue

        try:
            actions.append(_ACTION.validate_python(obj))
        except ValidationError as exc:
            logger.warning("Ignoring invalid %r action: %s", obj.get("action"), exc)
        pos = end

    return actions


def apply_action(
    plan: YearPlan, action: BaseModel, holidays: Iterable[Holiday] = ()
) -> ActionResult:
    """Carry out one action against *plan*."""
    if isinstance(action, AddVacation):
        skipped = plan.add_manual(action.dates, holidays)
        return ActionResult(action, skipped_holidays=tuple(skipped))
    if isinstance(action, RemoveVacation):
        plan.remove_dates(action.dates)
    elif isinstance(action, ClearOptimized):
        plan.clear_optimized()
    elif isinstance(action, ClearAllVacations):
        plan.clear_all()
    elif isinstance(action, UpdateConfig):
        changes: dict[str, object] = {}
        if action.vacation_days is not None:
            changes["vacation_days"] = action.vacation_days
        if action.reserved_days is not None:
            changes["reserved_days"] = action.reserved_days
        if action.optimization_strategy is not None:
            changes["strategy"] = action.optimization_strategy
        if action.work_week:
            changes["work_week"] = parse_work_week(action.work_week)
        if changes:
            plan.update_config(**changes)
    elif isinstance(action, Optimize):
        return ActionResult(action, trigger_optimize=True)
    else:
        msg = f"Unsupported action {action!r}"
        raise TypeError(msg)
    return ActionResult(action)


def apply_actions(
    plan: YearPlan, text: str, holidays: Iterable[Holiday] = ()
) -> list[ActionResult]:
    """Extract the actions in *text* and apply them in order."""
    holiday_list = list(holidays)
    return [apply_action(plan, a, holiday_list) for a in extract_actions(text)]
