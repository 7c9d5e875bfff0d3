from .base import Base, BaseModel
from .activity import Activity, ActivityStatus, AnalysisSnapshot, ReviewStatus
from .progress import KPIContribution, KPIProgressRecord, ProgressStatus, ValueSource
from . import strategic as strategic_models

__all__ = [
    "Base",
    "BaseModel",
    "Activity",
    "ActivityStatus",
    "AnalysisSnapshot",
    "ReviewStatus",
    "KPIContribution",
    "KPIProgressRecord",
    "ProgressStatus",
    "ValueSource",
    "strategic_models",
]
