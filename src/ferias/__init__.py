"""ferias: Portuguese vacation optimizer.

Place vacation days next to weekends and national or municipal holidays
so a limited allowance turns into the longest possible breaks.
"""

from ferias.holidays import Holiday, calculate_easter, portuguese_holidays
from ferias.optimizer import (
    OptimizationRequest,
    VacationBlock,
    VacationOptimizer,
    dates_to_blocks,
    optimize,
)
from ferias.planner import YearConfig, YearPlan, load_plan, save_plan
from ferias.provider import HolidayService, HolidayServiceConfig

__all__ = [
    "Holiday",
    "HolidayService",
    "HolidayServiceConfig",
    "OptimizationRequest",
    "VacationBlock",
    "VacationOptimizer",
    "YearConfig",
    "YearPlan",
    "calculate_easter",
    "dates_to_blocks",
    "load_plan",
    "optimize",
    "portuguese_holidays",
    "save_plan",
]
