from .plan import (
    InitiativeSummary,
    KRASummary,
    ResolvedTargetResponse,
    StrategicPlanDocument,
)

__all__ = [
    "InitiativeSummary",
    "KRASummary",
    "ResolvedTargetResponse",
    "StrategicPlanDocument",
]
