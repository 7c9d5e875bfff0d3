"""
Cliente HTTP hacia el servicio de análisis (colaborador externo).

Traduce cualquier fallo de red o de respuesta a ``CollaboratorError`` con el
mensaje que devolvió el colaborador.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from qpro.core.config import settings
from qpro.core.exceptions import CollaboratorError
from qpro.models.activity import AnalysisSnapshot
from qpro.schemas.analysis import RegenerationResponse, parse_analysis
from qpro.schemas.progress import KPIProgressResponse

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "detail", "message"):
            if body.get(key):
                return str(body[key])
    text = response.text.strip()
    return text or default


class AnalysisGateway:
    """Operaciones remotas sobre un análisis: lectura, edición, aprobación."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.ANALYSIS_API_BASE_URL).rstrip("/")
        self.timeout = settings.ANALYSIS_API_TIMEOUT if timeout is None else timeout
        self.headers = dict(headers or {})
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=self.headers,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        default_error: str,
        **kwargs: Any,
    ) -> Any:
        async with self._client() as client:
            try:
                response = await client.request(method, path, **kwargs)
            except httpx.HTTPError as exc:
                logger.warning("%s %s falló: %s", method, path, exc)
                raise CollaboratorError(f"{default_error}: {exc}") from exc

        if response.is_error:
            message = _error_message(response, default_error)
            logger.warning(
                "%s %s respondió %s: %s", method, path, response.status_code, message
            )
            raise CollaboratorError(message, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise CollaboratorError(f"{default_error}: respuesta no es JSON") from exc

    # ========== LECTURA ==========
    async def fetch_analysis(self, analysis_id: str) -> AnalysisSnapshot:
        data = await self._request(
            "GET",
            f"/qpro/approve/{analysis_id}",
            default_error="No se pudo cargar el análisis",
        )
        try:
            return parse_analysis(data or {}, analysis_id)
        except ValidationError as exc:
            logger.error("Análisis %s con forma inválida: %s", analysis_id, exc)
            raise CollaboratorError("Respuesta de análisis inválida") from exc

    async def fetch_progress(self, kra_id: str, year: int) -> KPIProgressResponse:
        data = await self._request(
            "GET",
            "/kpi-progress",
            params={"kraId": kra_id, "year": year},
            default_error="No se pudo cargar el progreso",
        )
        try:
            return KPIProgressResponse.model_validate(data)
        except ValidationError as exc:
            raise CollaboratorError("Respuesta de progreso inválida") from exc

    # ========== ESCRITURA ==========
    async def persist_activities(
        self, analysis_id: str, activities: List[Dict[str, Any]]
    ) -> None:
        await self._request(
            "PATCH",
            f"/qpro/analyses/{analysis_id}",
            json={"activities": activities},
            default_error="No se pudieron guardar las ediciones",
        )

    async def approve(self, analysis_id: str) -> Any:
        return await self._request(
            "POST",
            f"/qpro/approve/{analysis_id}",
            default_error="No se pudo aprobar el análisis",
        )

    async def reject(self, analysis_id: str, reason: str) -> Any:
        return await self._request(
            "DELETE",
            f"/qpro/approve/{analysis_id}",
            json={"reason": reason},
            default_error="No se pudo rechazar el análisis",
        )

    async def regenerate_insights(
        self, analysis_id: str, activities: List[Dict[str, Any]]
    ) -> RegenerationResponse:
        data = await self._request(
            "POST",
            "/qpro/regenerate-insights",
            json={"analysisId": analysis_id, "activities": activities},
            default_error="No se pudieron regenerar los insights",
        )
        try:
            return RegenerationResponse.model_validate(data or {})
        except ValidationError as exc:
            raise CollaboratorError("Respuesta de regeneración inválida") from exc
