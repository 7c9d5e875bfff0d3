from .plan import (
    KRA,
    Initiative,
    PlanMeta,
    StrategicPlan,
    TargetScope,
    TargetSpec,
    TargetType,
    TimelineEntry,
)

__all__ = [
    "KRA",
    "Initiative",
    "PlanMeta",
    "StrategicPlan",
    "TargetScope",
    "TargetSpec",
    "TargetType",
    "TimelineEntry",
]
