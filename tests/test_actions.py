from __future__ import annotations

import datetime

import pytest

from ferias.actions import (
    AddVacation,
    ClearAllVacations,
    ClearOptimized,
    Optimize,
    RemoveVacation,
    UpdateConfig,
    apply_action,
    apply_actions,
    extract_actions,
)
from ferias.holidays import Holiday
from ferias.optimizer import LONGEST_BLOCKS
from ferias.planner import YearConfig, YearPlan

NEW_YEAR_2026 = [Holiday(datetime.date(2026, 1, 1), "Ano Novo")]


def _plan() -> YearPlan:
    return YearPlan(YearConfig(2026))


class TestExtractActions:
    def test_actions_in_prose(self) -> None:
        text = (
            'Claro! Vou marcar as tuas férias: {"action": "add_vacation", '
            '"dates": ["2026-08-10", "2026-08-11"]} e depois otimizar '
            '{"action": "optimize"}. Boas férias!'
        )
        actions = extract_actions(text)
        assert [type(a) for a in actions] == [AddVacation, Optimize]
        assert actions[0].dates == [datetime.date(2026, 8, 10), datetime.date(2026, 8, 11)]

    def test_every_kind(self) -> None:
        text = "\n".join(
            [
                '{"action": "add_vacation", "dates": ["2026-03-02"]}',
                '{"action": "remove_vacation", "dates": ["2026-03-02"]}',
                '{"action": "clear_optimized"}',
                '{"action": "clear_all_vacations"}',
                '{"action": "update_config", "vacation_days": 25}',
                '{"action": "optimize"}',
            ]
        )
        assert [type(a) for a in extract_actions(text)] == [
            AddVacation,
            RemoveVacation,
            ClearOptimized,
            ClearAllVacations,
            UpdateConfig,
            Optimize,
        ]

    def test_nested_braces(self) -> None:
        text = '{"action": "update_config", "work_week": ["monday", "tuesday"], "extra": {"a": 1}}'
        actions = extract_actions(text)
        assert len(actions) == 1
        assert actions[0].work_week == ["monday", "tuesday"]

    def test_ignores_plain_json_and_garbage(self) -> None:
        text = 'Set {"theme": "dark"} then {oops} and {"action": "optimize"'
        assert extract_actions(text) == []

    def test_skips_unknown_and_invalid(self) -> None:
        text = (
            '{"action": "book_flight"} '
            '{"action": "add_vacation", "dates": ["not-a-date"]} '
            '{"action": "update_config", "optimization_strategy": "smart"} '
            '{"action": "update_config", "reserved_days": -1} '
            '{"action": "update_config", "work_week": ["funday"]} '
            '{"action": "clear_optimized"}'
        )
        assert [type(a) for a in extract_actions(text)] == [ClearOptimized]

    def test_no_actions(self) -> None:
        assert extract_actions("Nada a fazer.") == []


class TestApplyAction:
    def test_add_vacation_skips_holidays(self) -> None:
        plan = _plan()
        action = AddVacation(
            action="add_vacation",
            dates=[datetime.date(2026, 1, 1), datetime.date(2026, 1, 2)],
        )
        result = apply_action(plan, action, NEW_YEAR_2026)
        assert result.skipped_holidays == (datetime.date(2026, 1, 1),)
        assert not result.trigger_optimize
        assert plan.manual_dates == {datetime.date(2026, 1, 2)}

    def test_remove_vacation(self) -> None:
        plan = _plan()
        plan.add_manual([datetime.date(2026, 1, 2)])
        apply_action(plan, RemoveVacation(action="remove_vacation", dates=[datetime.date(2026, 1, 2)]))
        assert plan.manual_dates == set()

    def test_clear_actions(self) -> None:
        plan = YearPlan(YearConfig(2026, vacation_days=1))
        plan.add_manual([datetime.date(2026, 3, 2)])
        plan.update_config(vacation_days=2)
        plan.optimize(NEW_YEAR_2026)
        assert plan.optimal

        apply_action(plan, ClearOptimized(action="clear_optimized"))
        assert plan.optimal == {}
        assert plan.manual_dates

        apply_action(plan, ClearAllVacations(action="clear_all_vacations"))
        assert plan.manual_dates == set()

    def test_update_config(self) -> None:
        plan = _plan()
        action = UpdateConfig(
            action="update_config",
            vacation_days=25,
            reserved_days=3,
            optimization_strategy=LONGEST_BLOCKS,
            work_week=["Monday", "tuesday", "wednesday", "thursday"],
        )
        apply_action(plan, action)
        assert plan.config.vacation_days == 25
        assert plan.config.reserved_days == 3
        assert plan.config.strategy == LONGEST_BLOCKS
        assert plan.config.work_week == frozenset({"monday", "tuesday", "wednesday", "thursday"})

    def test_partial_update_keeps_other_fields(self) -> None:
        plan = YearPlan(YearConfig(2026, vacation_days=25, reserved_days=3))
        apply_action(plan, UpdateConfig(action="update_config", reserved_days=0))
        assert plan.config.vacation_days == 25
        assert plan.config.reserved_days == 0

    def test_optimize_triggers(self) -> None:
        result = apply_action(_plan(), Optimize(action="optimize"))
        assert result.trigger_optimize

    def test_unsupported_action(self) -> None:
        with pytest.raises(TypeError):
            apply_action(_plan(), YearConfig(2026))  # type: ignore[arg-type]

    def test_apply_actions_in_order(self) -> None:
        plan = _plan()
        text = (
            '{"action": "add_vacation", "dates": ["2026-08-10", "2026-08-11"]} '
            '{"action": "remove_vacation", "dates": ["2026-08-10"]} '
            '{"action": "optimize"}'
        )
        results = apply_actions(plan, text, NEW_YEAR_2026)
        assert len(results) == 3
        assert results[-1].trigger_optimize
        assert plan.manual_dates == {datetime.date(2026, 8, 11)}
