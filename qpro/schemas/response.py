from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class SuccessResponse(BaseModel, Generic[T]):
    """Respuesta genérica para respuestas exitosas."""
    success: bool = True
    data: Optional[T] = None
    message: str = "Operación exitosa"
    metadata: Optional[Dict[str, Any]] = None

