from pathlib import Path
from typing import List, Union

from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings

DEFAULT_PLAN_PATH = Path(__file__).resolve().parent.parent / "data" / "strategic_plan.json"


class Settings(BaseSettings):
    # API
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "QPRO KPI Achievement Engine"
    VERSION: str = "1.0.0"

    # CORS
    BACKEND_CORS_ORIGINS: List[Union[str, AnyHttpUrl]] = [
        "http://localhost:3000",
        "http://localhost:8000",
    ]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(
        cls, v: Union[str, List[str]]
    ) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Database (almacén de progreso acumulado)
    DATABASE_URL: str = "sqlite:///./qpro.db"

    # Plan estratégico (JSON cargado una sola vez)
    STRATEGIC_PLAN_PATH: str = str(DEFAULT_PLAN_PATH)

    # Servicio externo de análisis QPRO
    ANALYSIS_API_BASE_URL: str = "http://localhost:3000/api"
    ANALYSIS_API_TIMEOUT: float = 30.0  # segundos

    # Rate limiting para regeneración y registro de contribuciones
    RATE_LIMIT_MAX_REQUESTS: int = 60
    RATE_LIMIT_WINDOW_SECONDS: int = 3600  # 1 hora

    # Umbral de "en curso" para clasificar progreso
    ON_TRACK_THRESHOLD: float = 80.0

    # Aplicación
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()
