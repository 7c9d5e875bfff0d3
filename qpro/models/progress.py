import enum

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    Float,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)

from qpro.models.base import BaseModel


class ProgressStatus(str, enum.Enum):
    """Clasificación del progreso de un KPI"""
    MET = "MET"            # Meta cumplida
    ON_TRACK = "ON_TRACK"  # En curso
    MISSED = "MISSED"      # Por debajo
    PENDING = "PENDING"    # Sin avance


class ValueSource(str, enum.Enum):
    QPRO = "qpro"
    MANUAL = "manual"
    NONE = "none"


class KPIContribution(BaseModel):
    """Aporte de un análisis aprobado a un KPI (uno por análisis y KPI)"""
    __tablename__ = "kpi_contributions"
    __table_args__ = (
        UniqueConstraint("analysis_id", "initiative_id", name="uq_contribution_analysis_kpi"),
    )

    analysis_id = Column(String(64), nullable=False, index=True)
    document_id = Column(String(64), nullable=True)
    unit_id = Column(String(64), nullable=True)

    kra_id = Column(String(20), nullable=False, index=True)  # Forma canónica "KRA n"
    initiative_id = Column(String(50), nullable=False, index=True)
    year = Column(Integer, nullable=False, index=True)
    quarter = Column(Integer, nullable=False, default=1)

    value = Column(Float, nullable=False, default=0.0)
    target_type = Column(String(30), nullable=False, default="count")

    def __repr__(self) -> str:
        return (
            f"<KPIContribution(analysis='{self.analysis_id}', kpi='{self.initiative_id}', "
            f"value={self.value})>"
        )


class KPIProgressRecord(BaseModel):
    """Progreso acumulado por KPI, año y trimestre"""
    __tablename__ = "kpi_progress_records"
    __table_args__ = (
        UniqueConstraint("kra_id", "initiative_id", "year", "quarter", name="uq_progress_period"),
    )

    kra_id = Column(String(20), nullable=False, index=True)
    kra_title = Column(String(300), nullable=True)
    initiative_id = Column(String(50), nullable=False, index=True)
    year = Column(Integer, nullable=False, index=True)
    quarter = Column(Integer, nullable=False, default=1)

    target_type = Column(String(30), nullable=False, default="count")
    total_reported = Column(Float, nullable=False, default=0.0)
    target_value = Column(Float, nullable=True)
    achievement_percent = Column(Float, nullable=False, default=0.0)
    status = Column(Enum(ProgressStatus), default=ProgressStatus.PENDING, nullable=False)
    submission_count = Column(Integer, nullable=False, default=0)
    participating_units = Column(JSON, default=list)

    # Corrección manual sobre el valor derivado de QPRO
    manual_override = Column(Float, nullable=True)
    manual_override_reason = Column(Text, nullable=True)
    manual_override_by = Column(Integer, nullable=True)
    manual_override_at = Column(DateTime(timezone=True), nullable=True)

    # Concurrencia optimista
    version = Column(Integer, nullable=False, default=0)

    @property
    def current_value(self) -> float:
        if self.manual_override is not None:
            return self.manual_override
        return self.total_reported or 0.0

    @property
    def value_source(self) -> ValueSource:
        if self.manual_override is not None:
            return ValueSource.MANUAL
        if (self.total_reported or 0) > 0:
            return ValueSource.QPRO
        return ValueSource.NONE

    def __repr__(self) -> str:
        return (
            f"<KPIProgressRecord(kpi='{self.initiative_id}', year={self.year}, "
            f"q={self.quarter}, total={self.total_reported}, v={self.version})>"
        )
