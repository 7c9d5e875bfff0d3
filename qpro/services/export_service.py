import io
from datetime import datetime, timezone
from typing import Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font

from qpro.models.activity import Activity
from qpro.services.progress_service import DocumentProgress, ReviewSummary, review_summary


class ExportService:
    """Servicio para exportar el resultado de una revisión a Excel."""

    @staticmethod
    def export_review_to_excel(
        analysis_id: str,
        activities: Sequence[Activity],
        progress: Optional[DocumentProgress] = None,
        summary: Optional[ReviewSummary] = None,
    ) -> bytes:
        summary = summary or review_summary(activities)
        wb = Workbook()

        sheet = wb.active
        sheet.title = "Resumen"
        rows = [
            ("Campo", "Valor"),
            ("Análisis", analysis_id),
            ("Generado", datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M")),
            ("Actividades", summary.total_activities),
            ("KPIs cumplidos", summary.met_count),
            ("KPIs no cumplidos", summary.missed_count),
            ("Logro promedio", f"{summary.avg_achievement:.2f}%"),
        ]
        if progress is not None:
            rows.append(("Logro del documento", f"{progress.achievement:.2f}%"))
        for row in rows:
            sheet.append(row)
        sheet["A1"].font = Font(bold=True)
        sheet["B1"].font = Font(bold=True)

        detail = wb.create_sheet("Actividades")
        detail.append(("Actividad", "KRA", "KPI", "Reportado", "Meta", "Logro %", "Estado"))
        for activity in activities:
            detail.append(
                (
                    activity.name,
                    activity.kra_id,
                    activity.initiative_id or "",
                    str(activity.reported) if activity.reported is not None else "",
                    str(activity.target) if activity.target is not None else "",
                    round(activity.achievement, 2),
                    activity.status.value,
                )
            )

        if progress is not None:
            kpis = wb.create_sheet("KPIs")
            kpis.append(
                ("KRA", "KPI", "Tipo", "Aporte", "Total", "Meta", "Logro %", "Logro real %", "Estado")
            )
            for kpi in progress.kpis:
                kpis.append(
                    (
                        kpi.kra_id,
                        kpi.initiative_id,
                        kpi.target_type or "",
                        kpi.contribution,
                        kpi.progress.new_total,
                        kpi.progress.target,
                        round(kpi.progress.displayed_achievement, 2),
                        round(kpi.progress.raw_achievement, 2),
                        kpi.status.value,
                    )
                )

        buffer = io.BytesIO()
        wb.save(buffer)
        buffer.seek(0)
        return buffer.read()
