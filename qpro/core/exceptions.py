from typing import Dict, Optional

from fastapi import HTTPException, status


# ============================================
# ERRORES DE DOMINIO (servicios)
# ============================================

class QproError(Exception):
    """Excepción base del motor de KPIs."""


class ReviewStateError(QproError):
    """Operación no permitida en el estado actual de la revisión."""


class ActivityValidationError(QproError):
    """Validación de asignaciones KRA/KPI fallida, con errores por índice."""

    def __init__(self, message: str, errors: Dict[int, str]):
        super().__init__(message)
        self.errors = dict(errors)


class CollaboratorError(QproError):
    """Fallo de red o de respuesta en un servicio externo."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class OperationInProgressError(QproError):
    """Ya hay una operación de red en curso para esta revisión."""


class ProgressConflictError(QproError):
    """El registro de progreso cambió desde que fue leído."""

    def __init__(self, expected_version: int, actual_version: int):
        super().__init__(
            f"Versión de progreso desactualizada: se esperaba {expected_version}, "
            f"actual {actual_version}"
        )
        self.expected_version = expected_version
        self.actual_version = actual_version


# ============================================
# EXCEPCIONES HTTP (endpoints)
# ============================================

class NotFoundException(HTTPException):
    """Recurso no encontrado."""

    def __init__(self, detail: str = "Recurso no encontrado"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
        )


class ProgressConflictException(HTTPException):
    """Conflicto de concurrencia optimista sobre el progreso."""

    def __init__(self, detail: str = "El progreso fue modificado por otra aprobación"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )


class RateLimitException(HTTPException):
    """Límite de tasa excedido."""

    def __init__(self, detail: str = "Límite de tasa excedido", retry_after: int = 0):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail,
            headers={"Retry-After": str(retry_after)} if retry_after else None,
        )
