import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class _WindowRecord:
    count: int
    reset_at: float


class RateLimiter:
    """Límite de solicitudes por identificador en una ventana fija.

    El estado vive en la instancia; los registros vencidos se eliminan al
    consultarlos y, como mucho una vez por ventana, en un barrido completo
    durante is_allowed. No hay proceso en segundo plano.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests debe ser al menos 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock or time.monotonic
        self._records: Dict[str, _WindowRecord] = {}
        self._next_sweep = 0.0

    def _live_record(self, identifier: str) -> Optional[_WindowRecord]:
        record = self._records.get(identifier)
        if record is not None and record.reset_at <= self._clock():
            del self._records[identifier]
            return None
        return record

    def _sweep(self) -> None:
        now = self._clock()
        if now < self._next_sweep:
            return
        expired = [k for k, r in self._records.items() if r.reset_at <= now]
        for identifier in expired:
            del self._records[identifier]
        self._next_sweep = now + self.window_seconds

    def is_allowed(self, identifier: str) -> bool:
        """Registra la solicitud y devuelve si está dentro del límite."""
        self._sweep()
        record = self._live_record(identifier)
        if record is None:
            self._records[identifier] = _WindowRecord(
                count=1, reset_at=self._clock() + self.window_seconds
            )
            return True

        if record.count >= self.max_requests:
            logger.warning("Rate limit excedido para %s", identifier)
            return False

        record.count += 1
        return True

    def remaining(self, identifier: str) -> int:
        record = self._live_record(identifier)
        if record is None:
            return self.max_requests
        return max(0, self.max_requests - record.count)

    def retry_after(self, identifier: str) -> int:
        """Segundos hasta que se reinicia la ventana (0 si no hay registro)."""
        record = self._live_record(identifier)
        if record is None:
            return 0
        return max(0, int(record.reset_at - self._clock()) + 1)

    def reset(self, identifier: Optional[str] = None) -> None:
        if identifier is None:
            self._records.clear()
        else:
            self._records.pop(identifier, None)

    def __len__(self) -> int:
        for identifier in list(self._records):
            self._live_record(identifier)
        return len(self._records)
