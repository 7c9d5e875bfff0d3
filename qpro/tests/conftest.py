import json
import os

# Base de datos en memoria antes de importar la configuración
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from qpro import models  # noqa: F401
from qpro.core.config import DEFAULT_PLAN_PATH
from qpro.database import Base, build_engine, get_db
from qpro.main import app
from qpro.services.analysis_gateway import AnalysisGateway
from qpro.services.review_workflow import ReclassificationWorkflow
from qpro.services.strategic_plan_service import StrategicPlanService, get_plan_service

COLLABORATOR_URL = "http://collaborator.test/api"


@pytest.fixture(scope="session")
def plan_service():
    return StrategicPlanService(DEFAULT_PLAN_PATH)


@pytest.fixture
def plan(plan_service):
    return plan_service.plan


@pytest.fixture
def db_session():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def client(db_session, plan_service):
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_plan_service] = lambda: plan_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ========== COLABORADOR SIMULADO ==========
class FakeCollaborator:
    """Servicio de análisis en memoria servido por httpx.MockTransport."""

    def __init__(self, analysis, progress=None):
        self.analysis = analysis
        self.progress = progress or {}
        self.failures = {}
        self.regenerated = None
        self.calls = []

    def fail(self, method, path, status_code=500, body=None):
        self.failures[(method, path)] = (status_code, body or {"error": "fallo"})

    def paths(self, method=None):
        return [path for m, path, _ in self.calls if method is None or m == method]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path[len("/api"):]
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, path, body))

        failure = self.failures.get((request.method, path))
        if failure:
            status_code, payload = failure
            return httpx.Response(status_code, json=payload)

        if request.method == "GET" and path.startswith("/qpro/approve/"):
            return httpx.Response(200, json=self.analysis)
        if request.method == "GET" and path == "/kpi-progress":
            kra_id = request.url.params.get("kraId")
            if kra_id not in self.progress:
                return httpx.Response(404, json={"error": "sin progreso"})
            return httpx.Response(200, json=self.progress[kra_id])
        if request.method == "PATCH" and path.startswith("/qpro/analyses/"):
            self.analysis = {**self.analysis, "activities": body["activities"]}
            return httpx.Response(200, json={"success": True})
        if request.method == "POST" and path.startswith("/qpro/approve/"):
            return httpx.Response(200, json={"success": True, "status": "APPROVED"})
        if request.method == "DELETE" and path.startswith("/qpro/approve/"):
            return httpx.Response(200, json={"success": True})
        if request.method == "POST" and path == "/qpro/regenerate-insights":
            if self.regenerated is not None:
                return httpx.Response(200, json=self.regenerated)
            activities = [
                {**item, "aiInsight": f"Insight para {item['name']}"}
                for item in body["activities"]
            ]
            return httpx.Response(
                200, json={"activities": activities, "alignment": "Alineado"}
            )
        return httpx.Response(404, json={"error": f"ruta desconocida {path}"})


def make_gateway(fake: FakeCollaborator) -> AnalysisGateway:
    return AnalysisGateway(COLLABORATOR_URL, transport=httpx.MockTransport(fake.handler))


@pytest.fixture
def sample_analysis():
    return {
        "id": "analysis-1",
        "year": 2025,
        "quarter": 2,
        "status": "DRAFT",
        "activities": [
            {
                "name": "Research publication in Scopus journal",
                "kraId": "KRA 5",
                "initiativeId": "KRA5-KPI1",
                "reported": 3,
                "target": 10,
                "achievement": 30,
                "status": "MISSED",
                "confidence": 0.9,
            },
            {
                "name": "Community outreach in Barangay San Isidro",
                "kraId": "KRA 8",
                "initiativeId": "KRA8-KPI1",
                "reported": 4,
                "target": 10,
                "achievement": 40,
                "status": "MISSED",
                "confidence": 0.8,
            },
            {
                "name": "Graduate tracer study",
                "kraId": "KRA 3",
                "initiativeId": "KRA3-KPI5",
                "reported": 76,
                "target": 80,
                "achievement": 95,
                "status": "MISSED",
                "confidence": 0.7,
            },
        ],
    }


@pytest.fixture
def make_workflow(plan_service):
    def _make(analysis, progress=None):
        fake = FakeCollaborator(analysis, progress)
        workflow = ReclassificationWorkflow(
            analysis.get("id", "analysis-1"), make_gateway(fake), plan_service
        )
        return workflow, fake

    return _make
