from __future__ import annotations

import datetime
import json
import os
import tempfile

import pytest

from ferias.holidays import Holiday, portuguese_holidays
from ferias.optimizer import BRIDGE_HOLIDAYS, LONGEST_BLOCKS, STRATEGIES, build_block
from ferias.planner import (
    ConfigError,
    OptimalVacation,
    YearConfig,
    YearPlan,
    available_budget,
    build_calendar_days,
    calculate_summary,
    load_plan,
    save_plan,
)
from ferias.workweek import DEFAULT_WORK_WEEK, resolve_work_week

NEW_YEAR_2026 = [Holiday(datetime.date(2026, 1, 1), "Ano Novo")]


def _write_config(data: object) -> str:
    """Write a JSON config to a temp file and return its path."""
    fd, path = tempfile.mkstemp(suffix=".json")
    with os.fdopen(fd, "w") as f:
        json.dump(data, f)
    return path


def _bridge_plan(vacation_days: int = 1) -> YearPlan:
    return YearPlan(YearConfig(2026, vacation_days=vacation_days, strategy=BRIDGE_HOLIDAYS))


class TestBudget:
    def test_available_budget(self) -> None:
        assert available_budget(YearConfig(2026, vacation_days=22, reserved_days=2), 3) == 17

    def test_never_negative(self) -> None:
        assert available_budget(YearConfig(2026, vacation_days=5, reserved_days=3), 4) == 0

    def test_plan_budget_counts_manual_days(self) -> None:
        plan = YearPlan(YearConfig(2026), manual_dates=[datetime.date(2026, 8, 10)])
        assert plan.budget == 21


class TestYearPlan:
    def test_optimize_stores_vacation_days(self) -> None:
        plan = _bridge_plan()
        blocks = plan.optimize(NEW_YEAR_2026)
        assert len(blocks) == 1
        assert plan.optimal == {
            datetime.date(2026, 1, 2): OptimalVacation(datetime.date(2026, 1, 2), 1, 2)
        }

    def test_optimize_replaces_previous_result(self) -> None:
        plan = _bridge_plan(vacation_days=4)
        plan.optimize(portuguese_holidays(2026))
        assert len(plan.optimal) == 4
        plan.update_config(vacation_days=1)
        plan.optimize(portuguese_holidays(2026))
        assert list(plan.optimal) == [datetime.date(2026, 4, 6)]

    def test_block_ids_are_one_based(self) -> None:
        plan = _bridge_plan(vacation_days=4)
        plan.optimize(portuguese_holidays(2026))
        assert sorted({o.block_id for o in plan.optimal.values()}) == [1, 2, 3, 4]

    def test_optimized_days_stay_in_plan_year(self) -> None:
        # Jan 1 2024 is a Monday
        holidays = portuguese_holidays(2024)
        for strategy in STRATEGIES:
            plan = YearPlan(YearConfig(2024, strategy=strategy))
            plan.optimize(holidays)
            assert plan.optimal
            assert all(d.year == 2024 for d in plan.optimal)
            days = build_calendar_days(plan, holidays)
            summary = calculate_summary(plan, holidays)
            assert summary.used_vacation_days == sum(1 for d in days if d.is_optimal)

    def test_apply_blocks_skips_manual_days(self) -> None:
        manual = datetime.date(2026, 1, 6)
        plan = YearPlan(YearConfig(2026), manual_dates=[manual])
        block = build_block(
            datetime.date(2026, 1, 5), datetime.date(2026, 1, 7), set(), DEFAULT_WORK_WEEK, {manual}
        )
        plan.apply_blocks([block])
        assert sorted(plan.optimal) == [datetime.date(2026, 1, 5), datetime.date(2026, 1, 7)]
        assert all(o.consecutive_days == 3 for o in plan.optimal.values())

    def test_add_manual_refuses_holidays(self) -> None:
        plan = _bridge_plan()
        skipped = plan.add_manual(
            [datetime.date(2026, 1, 1), datetime.date(2026, 1, 5)], NEW_YEAR_2026
        )
        assert skipped == [datetime.date(2026, 1, 1)]
        assert plan.manual_dates == {datetime.date(2026, 1, 5)}

    def test_remove_dates(self) -> None:
        plan = _bridge_plan()
        plan.optimize(NEW_YEAR_2026)
        plan.add_manual([datetime.date(2026, 3, 2)])
        plan.remove_dates([datetime.date(2026, 1, 2), datetime.date(2026, 3, 2)])
        assert plan.optimal == {}
        assert plan.manual_dates == set()

    def test_clear(self) -> None:
        plan = _bridge_plan()
        plan.optimize(NEW_YEAR_2026)
        plan.add_manual([datetime.date(2026, 3, 2)])

        plan.clear_optimized()
        assert plan.optimal == {}
        assert plan.manual_dates == {datetime.date(2026, 3, 2)}

        plan.clear_all()
        assert plan.manual_dates == set()

    def test_update_config(self) -> None:
        plan = _bridge_plan()
        config = plan.update_config(reserved_days=2, strategy=LONGEST_BLOCKS)
        assert config.reserved_days == 2
        assert plan.config.strategy == LONGEST_BLOCKS
        assert plan.config.year == 2026

    def test_vacation_dates(self) -> None:
        plan = _bridge_plan()
        plan.optimize(NEW_YEAR_2026)
        plan.add_manual([datetime.date(2026, 1, 5)])
        assert plan.vacation_dates() == [datetime.date(2026, 1, 2), datetime.date(2026, 1, 5)]


class TestPlanFile:
    def test_round_trip(self) -> None:
        plan = YearPlan(
            YearConfig(
                2026,
                vacation_days=25,
                reserved_days=2,
                strategy=BRIDGE_HOLIDAYS,
                work_week=resolve_work_week("four_day"),
                city="Porto",
                notes="Verão no Algarve",
            ),
            manual_dates=[datetime.date(2026, 8, 10)],
        )
        plan.optimize(portuguese_holidays(2026))

        fd, path = tempfile.mkstemp(suffix=".json")
        os.close(fd)
        save_plan(plan, path)
        loaded = load_plan(path)

        assert loaded.config == plan.config
        assert loaded.manual_dates == plan.manual_dates
        assert loaded.optimal == plan.optimal

    def test_minimal_file_uses_defaults(self) -> None:
        plan = load_plan(_write_config({"year": 2026}))
        assert plan.config == YearConfig(2026)
        assert plan.manual_dates == set()

    def test_work_week_preset_name(self) -> None:
        plan = load_plan(_write_config({"year": 2026, "work_week": "six_day"}))
        assert "saturday" in plan.config.work_week

    def test_year_override(self) -> None:
        plan = load_plan(_write_config({"year": 2025}), year=2026)
        assert plan.year == 2026

    def test_missing_file(self) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_plan("/nonexistent/plan.json")

    def test_invalid_json(self) -> None:
        fd, path = tempfile.mkstemp(suffix=".json")
        with os.fdopen(fd, "w") as f:
            f.write("{not valid json")
        with pytest.raises(ConfigError, match="Invalid JSON"):
            load_plan(path)

    @pytest.mark.parametrize(
        "data",
        [
            [],
            {"vacation_days": 22},
            {"year": "soon"},
            {"year": 2026, "vacation_days": -1},
            {"year": 2026, "reserved_days": "two"},
            {"year": 2026, "work_week": ["monday", "someday"]},
            {"year": 2026, "work_week": 5},
            {"year": 2026, "manual_vacations": ["2026-13-01"]},
            {"year": 2026, "optimal_vacations": ["2026-01-02"]},
        ],
    )
    def test_invalid_fields(self, data: object) -> None:
        with pytest.raises(ConfigError):
            load_plan(_write_config(data))


class TestCalendar:
    def test_one_entry_per_day(self) -> None:
        days = build_calendar_days(_bridge_plan(), NEW_YEAR_2026)
        assert len(days) == 365
        assert days[0].date == datetime.date(2026, 1, 1)
        assert days[-1].date == datetime.date(2026, 12, 31)

    def test_day_flags(self) -> None:
        plan = _bridge_plan()
        plan.optimize(NEW_YEAR_2026)
        plan.add_manual([datetime.date(2026, 1, 5)])
        days = build_calendar_days(plan, NEW_YEAR_2026)

        assert days[0].is_holiday
        assert days[0].holiday_name == "Ano Novo"
        assert days[0].day_of_week == "thursday"
        assert days[1].is_optimal
        assert days[1].is_vacation
        assert days[1].block_id == 1
        assert days[2].is_weekend
        assert days[4].is_manual
        assert days[4].is_vacation
        assert days[4].block_id is None

    def test_summary(self) -> None:
        plan = _bridge_plan()
        plan.optimize(NEW_YEAR_2026)
        summary = calculate_summary(plan, NEW_YEAR_2026)
        assert summary.total_vacation_days == 1
        assert summary.used_vacation_days == 1
        assert summary.remaining_vacation_days == 0
        assert summary.total_holidays == 1
        assert summary.longest_vacation_block == 2
        # Thu holiday + Fri vacation + Sat + Sun
        assert summary.total_days_off == 4

    def test_summary_without_vacation(self) -> None:
        summary = calculate_summary(YearPlan(YearConfig(2026)), NEW_YEAR_2026)
        assert summary.used_vacation_days == 0
        assert summary.remaining_vacation_days == 22
        assert summary.longest_vacation_block == 0
        assert summary.total_days_off == 1
