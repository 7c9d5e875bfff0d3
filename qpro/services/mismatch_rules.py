import logging
from typing import Dict, Iterable, Mapping, Optional, Tuple

from qpro.services.target_resolver import normalize_kra_id

logger = logging.getLogger(__name__)


DEFAULT_KRA_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "KRA 1": ("curriculum", "curricula", "course", "program design"),
    "KRA 2": ("market", "industry", "demand"),
    "KRA 3": ("instruction", "teaching", "learning", "quality", "student", "employment", "graduate"),
    "KRA 4": ("international", "mou", "moa", "global", "linkage"),
    "KRA 5": ("research", "publication", "innovation"),
    "KRA 6": ("research linkage", "collaboration", "partnership"),
    "KRA 7": ("research resources", "funding", "laboratory"),
    "KRA 8": ("community", "outreach", "service"),
    "KRA 11": ("human resources", "faculty", "staff"),
    "KRA 12": ("international", "global", "stakeholder"),
    "KRA 13": ("competitive", "human resources"),
    "KRA 14": ("satisfaction", "satisfaction rating"),
    "KRA 18": ("risk", "compliance"),
    "KRA 19": ("revenue", "operational", "efficiency"),
    "KRA 22": ("financial", "resources", "budget"),
}


class KeywordMismatchRules:
    """Tabla de palabras clave por KRA para advertir asignaciones dudosas.

    Es solo una señal: nunca bloquea una edición ni una aprobación.
    """

    def __init__(self, table: Optional[Mapping[str, Iterable[str]]] = None):
        source = DEFAULT_KRA_KEYWORDS if table is None else table
        self.table: Dict[str, Tuple[str, ...]] = {
            normalize_kra_id(kra_id): tuple(k.lower() for k in keywords)
            for kra_id, keywords in source.items()
        }

    def keywords_for(self, kra_id: str) -> Tuple[str, ...]:
        return self.table.get(normalize_kra_id(kra_id), ())

    def is_mismatch(self, activity_name: str, kra_id: str) -> bool:
        """True si el KRA tiene palabras clave y ninguna aparece en el nombre."""
        keywords = self.keywords_for(kra_id)
        if not keywords:
            return False
        name = (activity_name or "").lower()
        mismatch = not any(keyword in name for keyword in keywords)
        if mismatch:
            logger.info("Posible desajuste: '%s' asignada a %s", activity_name, kra_id)
        return mismatch
