import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from qpro.core.exceptions import ProgressConflictError
from qpro.crud.base import CRUDBase
from qpro.models.progress import KPIContribution, KPIProgressRecord
from qpro.models.strategic.plan import TargetType
from qpro.services.progress_service import classify_status, combine
from qpro.services.target_resolver import map_target_type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContributionInput:
    """Aporte agregado de un análisis a un KPI"""
    kra_id: str
    initiative_id: str
    value: float
    target_type: Optional[str]
    target_value: Optional[float]
    kra_title: Optional[str] = None


def _pooled_value(target_type: Optional[str], values: List[float]) -> float:
    """Porcentajes: media; hitos: máximo; el resto se suma."""
    if not values:
        return 0.0
    kind = map_target_type(target_type)
    if kind == TargetType.PERCENTAGE:
        return sum(values) / len(values)
    if kind in (TargetType.MILESTONE, TargetType.TEXT_CONDITION):
        return max(values)
    return sum(values)


class CRUDContribution(CRUDBase[KPIContribution]):
    """Registro de aportes por análisis y KPI."""

    def get_for_analysis(self, db: Session, analysis_id: str) -> List[KPIContribution]:
        return self.get_multi_by(db, analysis_id=analysis_id)

    def get_for_period(
        self, db: Session, *, kra_id: str, initiative_id: str, year: int, quarter: int
    ) -> List[KPIContribution]:
        return self.get_multi_by(
            db, kra_id=kra_id, initiative_id=initiative_id, year=year, quarter=quarter
        )


class CRUDProgress(CRUDBase[KPIProgressRecord]):
    """Progreso acumulado por KPI con control de versión optimista."""

    def __init__(self, model, contributions: CRUDContribution):
        super().__init__(model)
        self.contributions = contributions

    def get_period(
        self, db: Session, *, kra_id: str, initiative_id: str, year: int, quarter: int
    ) -> Optional[KPIProgressRecord]:
        return self.get_by(
            db, kra_id=kra_id, initiative_id=initiative_id, year=year, quarter=quarter
        )

    def list_for_year(
        self,
        db: Session,
        *,
        year: int,
        kra_id: Optional[str] = None,
        quarter: Optional[int] = None,
    ) -> List[KPIProgressRecord]:
        query = db.query(KPIProgressRecord).filter(KPIProgressRecord.year == year)
        if kra_id:
            query = query.filter(KPIProgressRecord.kra_id == kra_id)
        if quarter:
            query = query.filter(KPIProgressRecord.quarter == quarter)
        return query.order_by(
            KPIProgressRecord.initiative_id, KPIProgressRecord.quarter
        ).all()

    @staticmethod
    def _check_version(record: Optional[KPIProgressRecord], expected: Optional[int]) -> None:
        if expected is None:
            return
        actual = record.version if record is not None else 0
        if actual != expected:
            raise ProgressConflictError(expected, actual)

    def _get_or_new(
        self,
        db: Session,
        *,
        kra_id: str,
        initiative_id: str,
        year: int,
        quarter: int,
        target_type: Optional[str],
        target_value: Optional[float],
        kra_title: Optional[str] = None,
    ) -> KPIProgressRecord:
        record = self.get_period(
            db, kra_id=kra_id, initiative_id=initiative_id, year=year, quarter=quarter
        )
        if record is None:
            record = KPIProgressRecord(
                kra_id=kra_id,
                kra_title=kra_title,
                initiative_id=initiative_id,
                year=year,
                quarter=quarter,
                target_type=target_type or TargetType.COUNT.value,
                total_reported=0.0,
                target_value=target_value,
                achievement_percent=0.0,
                submission_count=0,
                participating_units=[],
                version=0,
            )
            db.add(record)
        return record

    def _refresh_totals(self, db: Session, record: KPIProgressRecord) -> None:
        """Recalcula el total del periodo desde el registro de aportes."""
        rows = self.contributions.get_for_period(
            db,
            kra_id=record.kra_id,
            initiative_id=record.initiative_id,
            year=record.year,
            quarter=record.quarter,
        )
        record.total_reported = _pooled_value(record.target_type, [r.value for r in rows])
        record.submission_count = len(rows)
        record.participating_units = sorted({r.unit_id for r in rows if r.unit_id})
        self._refresh_achievement(record)

    @staticmethod
    def _refresh_achievement(record: KPIProgressRecord) -> None:
        progress = combine(0.0, record.current_value, record.target_value)
        record.achievement_percent = progress.displayed_achievement
        record.status = classify_status(progress.displayed_achievement, record.target_type)

    # ========== APORTES ==========
    def commit_contributions(
        self,
        db: Session,
        *,
        analysis_id: str,
        year: int,
        quarter: int,
        contributions: Iterable[ContributionInput],
        unit_id: Optional[str] = None,
        document_id: Optional[str] = None,
        expected_versions: Optional[Dict[str, int]] = None,
    ) -> List[KPIProgressRecord]:
        """Registra (o reemplaza) los aportes de un análisis y actualiza el progreso.

        Reaprobar el mismo análisis no duplica: el aporte por (análisis, KPI)
        se sobrescribe. Con ``expected_versions`` se rechaza el lote completo
        si algún KPI cambió desde que fue leído.
        """
        expected_versions = expected_versions or {}
        touched: List[KPIProgressRecord] = []
        try:
            for item in contributions:
                record = self._get_or_new(
                    db,
                    kra_id=item.kra_id,
                    initiative_id=item.initiative_id,
                    year=year,
                    quarter=quarter,
                    target_type=item.target_type,
                    target_value=item.target_value,
                    kra_title=item.kra_title,
                )
                self._check_version(
                    record, expected_versions.get(f"{item.kra_id}|{item.initiative_id}")
                )

                existing = self.contributions.get_by(
                    db, analysis_id=analysis_id, initiative_id=item.initiative_id
                )
                values = {
                    "analysis_id": analysis_id,
                    "document_id": document_id,
                    "unit_id": unit_id,
                    "kra_id": item.kra_id,
                    "initiative_id": item.initiative_id,
                    "year": year,
                    "quarter": quarter,
                    "value": item.value,
                    "target_type": item.target_type or TargetType.COUNT.value,
                }
                previous_period = None
                if existing is None:
                    self.contributions.create(db, obj_in=values, commit=False)
                else:
                    if (existing.kra_id, existing.year, existing.quarter) != (item.kra_id, year, quarter):
                        previous_period = (existing.kra_id, existing.year, existing.quarter)
                    self.contributions.update(db, db_obj=existing, obj_in=values, commit=False)

                if item.target_type:
                    record.target_type = item.target_type
                if item.target_value is not None:
                    record.target_value = item.target_value
                db.flush()
                self._refresh_totals(db, record)
                record.version = (record.version or 0) + 1
                touched.append(record)

                # El aporte cambió de periodo: el anterior se recalcula sin él
                if previous_period is not None:
                    old_kra_id, old_year, old_quarter = previous_period
                    old_record = self.get_period(
                        db,
                        kra_id=old_kra_id,
                        initiative_id=item.initiative_id,
                        year=old_year,
                        quarter=old_quarter,
                    )
                    if old_record is not None:
                        self._refresh_totals(db, old_record)
                        old_record.version = (old_record.version or 0) + 1
                        touched.append(old_record)
            db.commit()
        except ProgressConflictError as exc:
            db.rollback()
            logger.warning("Conflicto al registrar aportes de %s: %s", analysis_id, exc)
            raise

        for record in touched:
            db.refresh(record)
        logger.info("Aportes de %s registrados en %s KPIs", analysis_id, len(touched))
        return touched

    def remove_contributions(self, db: Session, *, analysis_id: str) -> List[KPIProgressRecord]:
        """Elimina los aportes de un análisis y descuenta su valor del progreso."""
        rows = self.contributions.get_for_analysis(db, analysis_id)
        touched: List[KPIProgressRecord] = []
        for row in rows:
            record = self.get_period(
                db,
                kra_id=row.kra_id,
                initiative_id=row.initiative_id,
                year=row.year,
                quarter=row.quarter,
            )
            db.delete(row)
            db.flush()
            if record is not None:
                self._refresh_totals(db, record)
                record.version = (record.version or 0) + 1
                touched.append(record)
        db.commit()
        for record in touched:
            db.refresh(record)
        logger.info("Aportes de %s descontados de %s KPIs", analysis_id, len(touched))
        return touched

    # ========== CORRECCIÓN MANUAL ==========
    def set_override(
        self,
        db: Session,
        *,
        kra_id: str,
        initiative_id: str,
        year: int,
        quarter: int,
        value: Optional[float],
        reason: Optional[str] = None,
        user_id: Optional[int] = None,
        expected_version: Optional[int] = None,
        target_type: Optional[str] = None,
        target_value: Optional[float] = None,
    ) -> KPIProgressRecord:
        """Fija (o elimina con None) el valor manual de un periodo."""
        record = self._get_or_new(
            db,
            kra_id=kra_id,
            initiative_id=initiative_id,
            year=year,
            quarter=quarter,
            target_type=target_type,
            target_value=target_value,
        )
        try:
            self._check_version(record, expected_version)
        except ProgressConflictError:
            db.rollback()
            raise

        record.manual_override = value
        record.manual_override_reason = reason if value is not None else None
        record.manual_override_by = user_id if value is not None else None
        record.manual_override_at = datetime.now(timezone.utc) if value is not None else None
        record.updated_by = user_id
        self._refresh_achievement(record)
        record.version = (record.version or 0) + 1
        db.commit()
        db.refresh(record)
        logger.info(
            "Corrección manual en %s %s %s-T%s: %s", kra_id, initiative_id, year, quarter, value
        )
        return record


contribution_crud = CRUDContribution(KPIContribution)
progress_crud = CRUDProgress(KPIProgressRecord, contribution_crud)
