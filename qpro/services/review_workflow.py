"""
Revisión y reclasificación de un análisis QPRO antes de aprobarlo.

Estados: DRAFT -> APPROVED | REJECTED. Solo DRAFT admite ediciones. Las
operaciones de red se ejecutan de una en una; una segunda operación mientras
otra está en curso se rechaza.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from qpro.core.exceptions import (
    ActivityValidationError,
    CollaboratorError,
    OperationInProgressError,
    ReviewStateError,
)
from qpro.models.activity import Activity, AnalysisSnapshot, ReviewStatus
from qpro.models.strategic.plan import StrategicPlan
from qpro.services.aggregation_service import GroupKey
from qpro.services.analysis_gateway import AnalysisGateway
from qpro.services.export_service import ExportService
from qpro.services.mismatch_rules import KeywordMismatchRules
from qpro.services.progress_service import (
    DocumentProgress,
    ProgressRecord,
    ReviewSummary,
    annual_progress,
    compute_document_progress,
    review_summary,
)
from qpro.services.strategic_plan_service import StrategicPlanService
from qpro.services.target_resolver import find_initiative, normalize_kra_id

logger = logging.getLogger(__name__)

_UNSET: Any = object()

# Campos que solo cambian con ediciones del revisor
_LOCAL_FIELDS = frozenset(
    {"name", "title", "kraId", "initiativeId", "reported", "target", "achievement", "status", "confidence"}
)


def _reindex(indices: Set[int], removed: int) -> Set[int]:
    return {i - 1 if i > removed else i for i in indices if i != removed}


# ============================================
# VALIDACIONES
# ============================================

def kra_assignment_errors(activities: Sequence[Activity]) -> Dict[int, str]:
    """Toda actividad debe tener un KRA."""
    return {
        index: "Asigne un KRA a la actividad"
        for index, activity in enumerate(activities)
        if not (activity.kra_id or "").strip()
    }


def kpi_selection_errors(
    plan: StrategicPlan,
    activities: Sequence[Activity],
    changed: Iterable[int],
) -> Dict[int, str]:
    """Cada actividad reclasificada debe tener un KPI válido bajo su KRA."""
    errors: Dict[int, str] = {}
    for index in sorted(set(changed)):
        if index < 0 or index >= len(activities):
            continue
        activity = activities[index]
        if not (activity.initiative_id or "").strip():
            errors[index] = "Seleccione el KPI correspondiente al KRA corregido"
        elif find_initiative(plan, activity.kra_id, activity.initiative_id) is None:
            errors[index] = f"El KPI {activity.initiative_id} no pertenece a {activity.kra_id}"
    return errors


class ReclassificationWorkflow:
    """Copia de trabajo editable de las actividades de un análisis."""

    def __init__(
        self,
        analysis_id: str,
        gateway: AnalysisGateway,
        plan_service: StrategicPlanService,
        mismatch_rules: Optional[KeywordMismatchRules] = None,
    ):
        self.analysis_id = analysis_id
        self.gateway = gateway
        self.plan_service = plan_service
        self.mismatch_rules = mismatch_rules or KeywordMismatchRules()

        self.year: Optional[int] = None
        self.status = ReviewStatus.DRAFT
        self.activities: List[Activity] = []
        self.document_fields: Dict[str, Any] = {}
        self.changed: Set[int] = set()
        self.mismatches: Set[int] = set()
        self.errors: Dict[int, str] = {}
        self.progress: Dict[GroupKey, ProgressRecord] = {}
        self.last_error: Optional[str] = None
        self._busy = False

    # ============================================
    # CARGA
    # ============================================

    def load_snapshot(self, snapshot: AnalysisSnapshot) -> None:
        self.year = snapshot.year
        try:
            self.status = ReviewStatus(snapshot.status)
        except ValueError:
            self.status = ReviewStatus.DRAFT
        self.activities = [a.copy() for a in snapshot.activities]
        self.document_fields = dict(snapshot.document_fields)
        self.changed.clear()
        self.mismatches.clear()
        self.errors.clear()

    async def start(self) -> None:
        """Carga el análisis y el progreso acumulado de sus KRAs."""
        async with self._network_operation():
            snapshot = await self.gateway.fetch_analysis(self.analysis_id)
            self.load_snapshot(snapshot)
            await self._load_progress()
        logger.info(
            "Revisión %s iniciada: %s actividades, estado %s",
            self.analysis_id,
            len(self.activities),
            self.status.value,
        )

    async def _load_progress(self) -> None:
        self.progress = {}
        kra_ids = sorted({normalize_kra_id(a.kra_id) for a in self.activities if a.kra_id})
        for kra_id in kra_ids:
            try:
                response = await self.gateway.fetch_progress(kra_id, self.year)
            except CollaboratorError as exc:
                # Sin contexto acumulado: se usa el logro local del documento
                logger.warning(
                    "Progreso de %s no disponible para %s: %s", kra_id, self.analysis_id, exc
                )
                continue
            self.progress.update(annual_progress(response, self.year))

    # ============================================
    # EDICIONES LOCALES
    # ============================================

    def _require_editable(self) -> None:
        if self.status != ReviewStatus.DRAFT:
            raise ReviewStateError(
                f"El análisis {self.analysis_id} está {self.status.value} y no admite cambios"
            )
        if self._busy:
            raise OperationInProgressError("Hay una operación en curso")

    def _activity(self, index: int) -> Activity:
        if index < 0 or index >= len(self.activities):
            raise IndexError(f"Actividad {index} fuera de rango")
        return self.activities[index]

    def edit_kra(self, index: int, kra_id: str) -> bool:
        """Cambia el KRA, limpia el KPI y devuelve True si hay posible desajuste."""
        self._require_editable()
        activity = self._activity(index)
        activity.kra_id = normalize_kra_id(kra_id)
        activity.initiative_id = None
        self.changed.add(index)
        self.errors.pop(index, None)

        mismatch = self.mismatch_rules.is_mismatch(activity.name, activity.kra_id)
        if mismatch:
            self.mismatches.add(index)
        else:
            self.mismatches.discard(index)
        return mismatch

    def edit_kpi(self, index: int, initiative_id: str) -> None:
        self._require_editable()
        activity = self._activity(index)
        if not activity.kra_id:
            raise ActivityValidationError(
                "Seleccione un KRA antes del KPI",
                {index: "Seleccione un KRA antes del KPI"},
            )
        activity.initiative_id = initiative_id
        target = self.plan_service.resolve(activity.kra_id, initiative_id, self.year)
        if target.value is not None:
            activity.target = target.value
        activity.recompute_achievement()
        self.changed.add(index)
        self.errors.pop(index, None)

    def edit_values(self, index: int, reported: Any = _UNSET, target: Any = _UNSET) -> None:
        self._require_editable()
        activity = self._activity(index)
        if reported is not _UNSET:
            activity.reported = reported
        if target is not _UNSET:
            activity.target = target
        activity.recompute_achievement()

    def delete_activity(self, index: int) -> Activity:
        self._require_editable()
        self._activity(index)
        removed = self.activities.pop(index)
        self.changed = _reindex(self.changed, index)
        self.mismatches = _reindex(self.mismatches, index)
        self.errors = {
            (i - 1 if i > index else i): message
            for i, message in self.errors.items()
            if i != index
        }
        return removed

    def recompute_all(self) -> None:
        for activity in self.activities:
            activity.recompute_achievement()

    # ============================================
    # VALIDACIONES
    # ============================================

    def validate_kra_assignments(self) -> Dict[int, str]:
        errors = kra_assignment_errors(self.activities)
        self.errors.update(errors)
        return errors

    def validate_kpi_selections(self) -> Dict[int, str]:
        errors = kpi_selection_errors(self.plan_service.plan, self.activities, self.changed)
        self.errors.update(errors)
        return errors

    # ============================================
    # OPERACIONES REMOTAS
    # ============================================

    @asynccontextmanager
    async def _network_operation(self):
        if self._busy:
            raise OperationInProgressError("Hay una operación en curso")
        self._busy = True
        try:
            yield
        finally:
            self._busy = False

    def _ensure_draft(self) -> None:
        if self.status != ReviewStatus.DRAFT:
            raise ReviewStateError(
                f"El análisis {self.analysis_id} ya fue {self.status.value.lower()}"
            )

    async def regenerate_insights(self) -> bool:
        """Regenera insights de las actividades reclasificadas.

        Devuelve False si el colaborador falla; la revisión sigue con los
        valores locales y el conjunto de cambios se conserva.
        """
        self._ensure_draft()
        errors = self.validate_kpi_selections()
        if errors:
            raise ActivityValidationError(
                "Seleccione el KPI correcto antes de regenerar", errors
            )
        if not self.changed:
            return False

        indices = sorted(self.changed)
        payload = []
        for index in indices:
            item = self.activities[index].to_payload()
            item["index"] = index
            item["userSelectedKPI"] = True
            payload.append(item)

        async with self._network_operation():
            try:
                response = await self.gateway.regenerate_insights(self.analysis_id, payload)
            except CollaboratorError as exc:
                self.last_error = str(exc)
                logger.warning("Regeneración fallida para %s: %s", self.analysis_id, exc)
                return False

            regenerated = self._merge_regenerated(indices, response.activities)
            self.document_fields.update(response.document_fields())
            self.changed.clear()
            self.last_error = None
            await self._reconcile()

        logger.info(
            "Insights regenerados para %s: %s actividades", self.analysis_id, len(regenerated)
        )
        return True

    def _merge_regenerated(self, indices: List[int], returned: List[Any]) -> Dict[int, Dict[str, Any]]:
        by_name = {self.activities[i].name: i for i in indices}
        merged: Dict[int, Dict[str, Any]] = {}
        for position, item in enumerate(returned):
            fields = item.model_dump(exclude_none=True)
            fields.pop("index", None)
            fields.pop("userSelectedKPI", None)
            index = by_name.get(fields.get("name") or fields.get("title"))
            if index is None and position < len(indices):
                index = indices[position]
            if index is None:
                continue
            regenerated = {k: v for k, v in fields.items() if k not in _LOCAL_FIELDS}
            self.activities[index].merge_fields(regenerated)
            merged[index] = regenerated
        return merged

    async def _reconcile(self) -> None:
        """Relee el análisis y completa la copia local con lo que le falte.

        La copia local manda: KRA, KPI, valores y estado nunca se toman de la
        relectura, que puede no reflejar ediciones aún sin guardar.
        """
        try:
            snapshot = await self.gateway.fetch_analysis(self.analysis_id)
        except CollaboratorError as exc:
            logger.warning("No se pudo releer %s: %s", self.analysis_id, exc)
            return
        if len(snapshot.activities) != len(self.activities):
            logger.info(
                "Relectura de %s con %s actividades (local %s); se conserva la copia local",
                self.analysis_id,
                len(snapshot.activities),
                len(self.activities),
            )
            return

        for local, remote in zip(self.activities, snapshot.activities):
            current = local.to_payload()
            missing = {
                key: value
                for key, value in remote.to_payload().items()
                if key not in _LOCAL_FIELDS
                and value not in (None, "")
                and current.get(key) in (None, "")
            }
            if missing:
                local.merge_fields(missing)
        self.document_fields = {**snapshot.document_fields, **self.document_fields}

    async def approve(self) -> Any:
        """Valida, guarda las ediciones y solo entonces aprueba."""
        self._ensure_draft()
        kra_errors = self.validate_kra_assignments()
        if kra_errors:
            raise ActivityValidationError(
                "Asigne un KRA a todas las actividades antes de aprobar", kra_errors
            )
        kpi_errors = self.validate_kpi_selections()
        if kpi_errors:
            raise ActivityValidationError(
                "Seleccione el KPI correcto bajo el KRA corregido antes de aprobar",
                kpi_errors,
            )

        async with self._network_operation():
            activities = [a.to_payload() for a in self.activities]
            try:
                await self.gateway.persist_activities(self.analysis_id, activities)
            except CollaboratorError:
                logger.error("Ediciones de %s no guardadas; aprobación cancelada", self.analysis_id)
                raise
            result = await self.gateway.approve(self.analysis_id)
            self.status = ReviewStatus.APPROVED

        logger.info("Análisis %s aprobado", self.analysis_id)
        return result

    async def reject(self, reason: str) -> None:
        self._ensure_draft()
        async with self._network_operation():
            await self.gateway.reject(self.analysis_id, reason)
            self.status = ReviewStatus.REJECTED
        logger.info("Análisis %s rechazado: %s", self.analysis_id, reason)

    # ============================================
    # LOGRO
    # ============================================

    def document_progress(self) -> DocumentProgress:
        return compute_document_progress(
            self.plan_service.plan, self.activities, self.year, self.progress
        )

    def summary(self) -> ReviewSummary:
        return review_summary(self.activities)

    def export_excel(self) -> bytes:
        return ExportService.export_review_to_excel(
            self.analysis_id, self.activities, self.document_progress(), self.summary()
        )
