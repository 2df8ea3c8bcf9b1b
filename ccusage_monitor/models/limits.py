"""Plan limits models for ccusage-monitor.

Message allowances are calibrations against observed provider behaviour,
not values the provider publishes. They are configuration, never truth.
"""

import fnmatch
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field


class ModelLimit(BaseModel):
    """Allowance override for models matching a pattern within a plan."""

    model_pattern: str = Field(
        description="Model name or fnmatch pattern (e.g., '*opus*', 'claude-sonnet-4*')"
    )
    messages_per_window: int = Field(
        gt=0, description="Approximate user prompts allowed per rolling window"
    )

    def matches(self, model_id: str) -> bool:
        """Check whether a model identifier falls under this limit."""
        return fnmatch.fnmatch(model_id.lower(), self.model_pattern.lower())


class PlanLimit(BaseModel):
    """Approximate allowances for one subscription plan."""

    plan_id: str = Field(description="Plan identifier (pro, max5x, max20x)")
    display_name: Optional[str] = Field(default=None, description="Human-readable name")

    window_hours: int = Field(default=5, gt=0, description="Rolling window in hours")
    messages_per_window: int = Field(
        gt=0, description="Default prompts per rolling window"
    )
    weekly_prompt_limit: int = Field(
        gt=0, description="Approximate prompts allowed per week"
    )
    week_limit_hours: int = Field(
        gt=0, description="Advertised weekly usage hours for the plan"
    )

    model_limits: List[ModelLimit] = Field(
        default_factory=list, description="Per-model overrides, first match wins"
    )

    @computed_field
    @property
    def label(self) -> str:
        """Name shown to users."""
        return self.display_name or self.plan_id

    def limit_for_model(self, model_id: Optional[str]) -> int:
        """Get the rolling-window allowance for a model under this plan.

        Args:
            model_id: Dominant model in the window (None = plan default)

        Returns:
            Estimated message limit
        """
        if model_id:
            for model_limit in self.model_limits:
                if model_limit.matches(model_id):
                    return model_limit.messages_per_window
        return self.messages_per_window


class LimitsConfig(BaseModel):
    """Complete plan limits configuration."""

    plans: List[PlanLimit] = Field(default_factory=list)
    default_plan: str = Field(default="max5x")

    def get_plan(self, plan_id: Optional[str] = None) -> PlanLimit:
        """Get limits for a plan (the default plan when none is given).

        Raises:
            KeyError: If the plan is not configured
        """
        wanted = plan_id or self.default_plan
        for plan in self.plans:
            if plan.plan_id == wanted:
                return plan
        raise KeyError(wanted)


def default_limits_config() -> LimitsConfig:
    """Built-in plan allowances used when no limits.yaml is found."""
    return LimitsConfig(
        default_plan="max5x",
        plans=[
            PlanLimit(
                plan_id="pro",
                display_name="Pro",
                messages_per_window=45,
                weekly_prompt_limit=520,
                week_limit_hours=60,
            ),
            PlanLimit(
                plan_id="max5x",
                display_name="Max 5x",
                messages_per_window=225,
                weekly_prompt_limit=2590,
                week_limit_hours=210,
                model_limits=[
                    ModelLimit(model_pattern="*opus*", messages_per_window=100),
                ],
            ),
            PlanLimit(
                plan_id="max20x",
                display_name="Max 20x",
                messages_per_window=900,
                weekly_prompt_limit=10360,
                week_limit_hours=480,
                model_limits=[
                    ModelLimit(model_pattern="*opus*", messages_per_window=400),
                ],
            ),
        ],
    )
