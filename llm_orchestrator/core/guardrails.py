"""
Spend limits enforcement.

Decides whether a prospective cost may proceed given spend-to-date and fixed
daily and monthly limits. Spend is always re-queried; nothing is cached.

Decision rule:
    can_proceed = used_daily + estimate <= daily_limit
                  and used_monthly + estimate <= monthly_limit
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .errors import ValidationError
from ..ports import UsagePeriod, UsageRepository

logger = logging.getLogger(__name__)

DEFAULT_DAILY_LIMIT = 10.0
DEFAULT_MONTHLY_LIMIT = 100.0


@dataclass(frozen=True)
class BudgetLimits:
    """Fixed spend ceilings in USD."""
    daily: float = DEFAULT_DAILY_LIMIT
    monthly: float = DEFAULT_MONTHLY_LIMIT

    def __post_init__(self):
        """Validate limit values are positive."""
        if self.daily <= 0:
            raise ValueError("daily budget must be > 0")
        if self.monthly <= 0:
            raise ValueError("monthly budget must be > 0")


@dataclass(frozen=True)
class RemainingBudget:
    """Headroom left under each limit; negative once a limit is overrun."""
    daily: float
    monthly: float


@dataclass(frozen=True)
class BudgetSnapshot:
    """Spend-to-date, limits and the resulting decision."""
    daily_used: float
    monthly_used: float
    daily_limit: float
    monthly_limit: float
    remaining_budget: RemainingBudget
    can_proceed: bool


class BudgetGuard:
    """Check prospective spend against per-user or global usage."""

    def __init__(
        self,
        usage_repository: UsageRepository,
        limits: Optional[BudgetLimits] = None,
    ):
        self.usage_repository = usage_repository
        self.limits = limits or BudgetLimits()

    async def check_budget(
        self,
        user_id: Optional[str] = None,
        estimated_cost: float = 0.0,
    ) -> BudgetSnapshot:
        """Build a budget snapshot for a prospective spend.

        Args:
            user_id: Scope usage to this user; global usage when omitted
            estimated_cost: Cost about to be incurred

        Returns:
            BudgetSnapshot; ``can_proceed`` is False when either limit would be exceeded

        Raises:
            ValidationError: If estimated_cost is negative
            Repository errors: Propagated without modification
        """
        if estimated_cost is None or estimated_cost < 0:
            raise ValidationError("estimated_cost must be >= 0")

        if user_id is not None:
            daily_used = await self.usage_repository.get_total_cost_by_user(user_id, UsagePeriod.DAY)
            monthly_used = await self.usage_repository.get_total_cost_by_user(user_id, UsagePeriod.MONTH)
        else:
            daily_used = await self.usage_repository.get_total_cost_global(UsagePeriod.DAY)
            monthly_used = await self.usage_repository.get_total_cost_global(UsagePeriod.MONTH)

        can_proceed = (
            daily_used + estimated_cost <= self.limits.daily
            and monthly_used + estimated_cost <= self.limits.monthly
        )
        snapshot = BudgetSnapshot(
            daily_used=daily_used,
            monthly_used=monthly_used,
            daily_limit=self.limits.daily,
            monthly_limit=self.limits.monthly,
            remaining_budget=RemainingBudget(
                daily=self.limits.daily - daily_used,
                monthly=self.limits.monthly - monthly_used,
            ),
            can_proceed=can_proceed,
        )

        scope = f"user {user_id}" if user_id is not None else "global"
        logger.debug("Budget snapshot for %s: %s", scope, snapshot)
        if not can_proceed:
            logger.info(
                "Budget exceeded for %s: estimate $%.4f, used $%.4f/day $%.4f/month",
                scope, estimated_cost, daily_used, monthly_used,
            )
        return snapshot
