import sys
from datetime import date
from pathlib import Path

import pytest


BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


BOOTSTRAP_TOKEN = "test-bootstrap-token"
INTERNAL_TOKEN = "test-internal-token"
OWNER_PASSWORD = "owner-pass-123"
USER_PASSWORD = "user-pass-123"

# Monday; with Sat/Sun off and durations 2/3/1/2/1 the schedule is
# induction 06-07, training 08-10, certification 13, ojt 14-15,
# ojt_certification 16, handover 17 (January 2025).
BATCH_START = date(2025, 1, 6)
PROCESS_DAYS = {
    "inductionDays": 2,
    "trainingDays": 3,
    "certificationDays": 1,
    "ojtDays": 2,
    "ojtCertificationDays": 1,
}


@pytest.fixture()
def app_client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    db_path = tmp_path / "test.db"

    monkeypatch.setenv("ENV", "testing")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path.as_posix()}")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    monkeypatch.setenv("BOOTSTRAP_TOKEN", BOOTSTRAP_TOKEN)
    monkeypatch.setenv("INTERNAL_CRON_TOKEN", INTERNAL_TOKEN)
    monkeypatch.setenv("APP_TIMEZONE", "Asia/Kolkata")

    # Prevent accidental pollution from any existing env config.
    monkeypatch.delenv("ENABLE_SCHEDULER", raising=False)
    monkeypatch.delenv("CORS_ORIGINS", raising=False)

    from app import create_app
    from app.middlewares.rate_limit import limiter
    from cache_layer import cache_clear

    cache_clear()
    limiter.reset()

    app = create_app()
    app.testing = True

    with app.test_client() as client:
        yield app, client


@pytest.fixture()
def db_session(tmp_path: Path):
    """Bare SQLAlchemy session on a fresh SQLite file, for service-level tests."""
    import db as db_
    from cache_layer import cache_clear
    from schema import ensure_schema

    cache_clear()
    engine = db_.init_engine(f"sqlite:///{(tmp_path / 'svc.db').as_posix()}")
    ensure_schema(engine)
    session = db_.SessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def api(app_client):
    _app, client = app_client

    def _call(method: str, path: str, *, token: str = "", json=None, headers=None):
        h = dict(headers or {})
        if token:
            h["Authorization"] = f"Bearer {token}"
        return client.open(path, method=method, json=json, headers=h)

    return _call


@pytest.fixture()
def login(api):
    def _login(username: str, password: str = USER_PASSWORD) -> str:
        res = api("POST", "/api/v1/auth/login", json={"username": username, "password": password})
        assert res.status_code == 200, res.get_json()
        return res.get_json()["data"]["access_token"]

    return _login


@pytest.fixture()
def owner(api, login):
    res = api(
        "POST",
        "/api/v1/auth/bootstrap",
        json={
            "organizationName": "Acme Support",
            "username": "owner",
            "fullName": "Olivia Owner",
            "email": "owner@example.com",
            "password": OWNER_PASSWORD,
        },
        headers={"X-Bootstrap-Token": BOOTSTRAP_TOKEN},
    )
    assert res.status_code == 201, res.get_json()
    data = res.get_json()["data"]
    return {
        "token": login("owner", OWNER_PASSWORD),
        "userId": data["user"]["id"],
        "organizationId": data["organization"]["id"],
    }


@pytest.fixture()
def org(api, owner, login):
    """Location, LOB, active process, a manager and a trainer reporting to them."""

    tok = owner["token"]

    def _post(path: str, body: dict) -> dict:
        res = api("POST", path, token=tok, json=body)
        assert res.status_code == 201, res.get_json()
        return res.get_json()["data"]

    location = _post("/api/v1/organization/locations", {"name": "Pune", "city": "Pune", "country": "India"})
    lob = _post("/api/v1/organization/line-of-businesses", {"name": "Customer Care"})
    process = _post(
        "/api/v1/organization/processes",
        {"name": "Billing Voice", "lineOfBusinessId": lob["id"], **PROCESS_DAYS},
    )
    manager = _post(
        "/api/v1/organization/users",
        {
            "username": "mona",
            "fullName": "Mona Manager",
            "email": "mona@example.com",
            "role": "manager",
            "locationId": location["id"],
            "password": USER_PASSWORD,
        },
    )
    trainer = _post(
        "/api/v1/organization/users",
        {
            "username": "tariq",
            "fullName": "Tariq Trainer",
            "email": "tariq@example.com",
            "role": "trainer",
            "locationId": location["id"],
            "managerId": manager["id"],
            "password": USER_PASSWORD,
        },
    )
    return {
        "owner": owner,
        "token": tok,
        "location": location,
        "lob": lob,
        "process": process,
        "manager": manager,
        "trainer": trainer,
        "managerToken": login("mona"),
        "trainerToken": login("tariq"),
    }


@pytest.fixture()
def batch(api, org):
    res = api(
        "POST",
        "/api/v1/batches",
        token=org["token"],
        json={
            "name": "BV-2025-01",
            "processId": org["process"]["id"],
            "locationId": org["location"]["id"],
            "lineOfBusinessId": org["lob"]["id"],
            "trainerId": org["trainer"]["id"],
            "capacityLimit": 3,
            "startDate": BATCH_START.isoformat(),
        },
    )
    assert res.status_code == 201, res.get_json()
    return res.get_json()["data"]


@pytest.fixture()
def enroll(api, org, batch):
    counter = {"n": 0}

    def _enroll(batch_id: int | None = None) -> dict:
        counter["n"] += 1
        n = counter["n"]
        res = api(
            "POST",
            f"/api/v1/batches/{batch_id or batch['id']}/trainees",
            token=org["token"],
            json={
                "user": {
                    "username": f"trainee{n}",
                    "fullName": f"Trainee {n}",
                    "email": f"trainee{n}@example.com",
                    "employeeId": f"EMP{n:03d}",
                    "password": USER_PASSWORD,
                }
            },
        )
        assert res.status_code == 201, res.get_json()
        return res.get_json()["data"]

    return _enroll
