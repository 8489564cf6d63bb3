import os

# Ensure secrets exist before importing app.main (it calls require_jwt_secret() at import time).
os.environ.setdefault("JWT_SECRET", "test_jwt_secret")
os.environ.setdefault("INTERNAL_SHARED_SECRET", "test_internal_secret")

from contextlib import contextmanager
from types import SimpleNamespace

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth.identity import Actor
from app.core.base import Base
from app.core import config as app_config
from app.core.timeutils import utcnow

# Import models so they register with SQLAlchemy metadata.
from app.models.user import User
from app.models.company import Company
from app.models.posting import Posting
from app.models.application import Application
from app.models.resume import Resume
from app.models.resume_share import ResumeShare  # noqa: F401
from app.models.resume_access_log import ResumeAccessLog  # noqa: F401
from app.models.resume_stats import ResumeStats  # noqa: F401
from app.models.upload_token import UploadToken  # noqa: F401

from app.core.database import get_db
from app.dependencies.auth import get_current_actor
from app.services import storage as storage_service
from app.services.rate_limiter import reset_rate_limiter
from app.services.storage import build_resume_key


@pytest.fixture(scope="session")
def db_engine():
    # In-memory SQLite for fast, isolated tests.
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture()
def db_session(db_engine):
    # The in-memory DB persists across tests (StaticPool); reset schema per test.
    Base.metadata.drop_all(bind=db_engine)
    Base.metadata.create_all(bind=db_engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


class FakeS3Client:
    """
    Stand-in for the boto3 S3 client. `objects` maps key -> size for whatever the
    browser has "uploaded" directly to storage.
    """

    def __init__(self):
        self.objects: dict[str, int] = {}
        self.deleted: list[str] = []
        self.presigned: list[dict] = []
        self.fail = False

    def put(self, key: str, size: int = 2048) -> None:
        self.objects[key] = size

    def _maybe_fail(self, operation: str) -> None:
        if self.fail:
            raise ClientError({"Error": {"Code": "InternalError", "Message": "boom"}}, operation)

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):  # noqa: N803
        self._maybe_fail("GeneratePresignedUrl")
        self.presigned.append({"method": ClientMethod, "params": dict(Params), "expires_in": ExpiresIn})
        key = Params.get("Key", "")
        return f"https://example.invalid/presigned/{ClientMethod}?key={key}&n={len(self.presigned)}"

    def head_object(self, Bucket, Key):  # noqa: N803
        self._maybe_fail("HeadObject")
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        return {"ContentLength": self.objects[Key]}

    def delete_object(self, Bucket, Key):  # noqa: N803
        self._maybe_fail("DeleteObject")
        self.objects.pop(Key, None)
        self.deleted.append(Key)
        return {}


@pytest.fixture(autouse=True)
def fake_s3(monkeypatch):
    """
    Stub the S3 client used by app.services.storage so tests never require AWS creds/network.
    """
    fake = FakeS3Client()
    monkeypatch.setattr(storage_service, "_client", lambda: fake)
    app_config.settings.S3_BUCKET_NAME = app_config.settings.S3_BUCKET_NAME or "test-bucket"
    app_config.settings.AWS_REGION = app_config.settings.AWS_REGION or "us-east-1"
    return fake


@pytest.fixture(autouse=True)
def _reset_mutable_settings():
    """
    Tests tweak the process-global settings object; restore values after each test.
    """
    keys = [
        "S3_PREFIX",
        "MAX_RESUME_BYTES",
        "DAILY_UPLOAD_QUOTA",
        "UPLOAD_QUOTA_TIMEZONE",
        "UPLOAD_TOKEN_BACKEND",
        "SCAN_AUTO_CLEAN",
        "INTERNAL_SHARED_SECRET",
        "ACCESS_RATE_LIMIT_MAX",
        "ACCESS_RATE_LIMIT_WINDOW_SECONDS",
        "ACCESS_RATE_LIMIT_BACKEND",
        "RATE_LIMIT_ENABLED",
        "DDB_RATE_LIMIT_TABLE",
    ]
    original = {k: getattr(app_config.settings, k) for k in keys}
    # Known baseline regardless of the developer's .env
    app_config.settings.S3_PREFIX = ""
    app_config.settings.MAX_RESUME_BYTES = 10 * 1024 * 1024
    app_config.settings.DAILY_UPLOAD_QUOTA = 20
    app_config.settings.UPLOAD_QUOTA_TIMEZONE = "UTC"
    app_config.settings.UPLOAD_TOKEN_BACKEND = "sql"
    app_config.settings.SCAN_AUTO_CLEAN = False
    app_config.settings.INTERNAL_SHARED_SECRET = "test_internal_secret"
    app_config.settings.ACCESS_RATE_LIMIT_MAX = 50
    app_config.settings.ACCESS_RATE_LIMIT_WINDOW_SECONDS = 3600
    app_config.settings.ACCESS_RATE_LIMIT_BACKEND = "log"
    app_config.settings.RATE_LIMIT_ENABLED = False
    app_config.settings.DDB_RATE_LIMIT_TABLE = ""
    reset_rate_limiter()
    try:
        yield
    finally:
        for k, v in original.items():
            setattr(app_config.settings, k, v)
        reset_rate_limiter()


class _SharedSession:
    """
    Lets inline Celery tasks run on the test's session; closing is left to the fixture.
    """

    def __init__(self, session):
        self._session = session

    def close(self) -> None:
        pass

    def __getattr__(self, name):
        return getattr(self._session, name)


@pytest.fixture(autouse=True)
def _inline_tasks(monkeypatch, db_session):
    from app.tasks import resume_stats as stats_tasks

    monkeypatch.setattr(stats_tasks, "_with_db_session", lambda: _SharedSession(db_session))


@pytest.fixture()
def app(db_session):
    app_config.settings.JWT_SECRET = app_config.settings.JWT_SECRET or "test_jwt_secret"

    import app.main as main

    fastapi_app = main.app

    def override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def people(db_session):
    """
    Two students, two companies (Acme, Globex) and an admin, plus an Actor for each.
    """
    student = User(external_subject="sub-student", email="student@example.com", name="Sam Student", role="student")
    other_student = User(external_subject="sub-other", email="other@example.com", name="Olu Other", role="student")
    acme_user = User(external_subject="sub-acme", email="talent@acme.example", name="Acme HR", role="company")
    globex_user = User(external_subject="sub-globex", email="talent@globex.example", name="Globex HR", role="company")
    admin = User(external_subject="sub-admin", email="admin@example.com", name="Ada Admin", role="admin")
    db_session.add_all([student, other_student, acme_user, globex_user, admin])
    db_session.commit()

    acme = Company(user_id=acme_user.id, company_name="Acme")
    globex = Company(user_id=globex_user.id, company_name="Globex")
    db_session.add_all([acme, globex])
    db_session.commit()

    return SimpleNamespace(
        student=student,
        other_student=other_student,
        acme_user=acme_user,
        globex_user=globex_user,
        admin=admin,
        acme=acme,
        globex=globex,
        student_actor=Actor.student(student.id),
        other_student_actor=Actor.student(other_student.id),
        acme_actor=Actor.company(acme_user.id, acme.id),
        globex_actor=Actor.company(globex_user.id, globex.id),
        admin_actor=Actor(user_id=admin.id, role="admin"),
    )


@pytest.fixture()
def make_resume(db_session, fake_s3):
    """
    Insert a confirmed resume whose bytes already sit in (fake) storage.
    """

    def _make(
        owner: User,
        *,
        visibility: str = "private",
        scan_status: str = "clean",
        is_primary: bool = False,
        file_name: str = "resume.pdf",
        uploaded_at=None,
    ) -> Resume:
        key = build_resume_key(owner.id)
        fake_s3.put(key)
        resume = Resume(
            owner_id=owner.id,
            object_key=key,
            file_name=file_name,
            file_size=2048,
            mime_type="application/pdf",
            visibility=visibility,
            scan_status=scan_status,
            is_primary=is_primary,
            uploaded_at=uploaded_at or utcnow(),
        )
        db_session.add(resume)
        db_session.commit()
        db_session.refresh(resume)
        return resume

    return _make


@pytest.fixture()
def make_application(db_session):
    def _make(company: Company, student: User, resume: Resume | None) -> Application:
        posting = Posting(company_id=company.id, title="Backend Engineering Intern")
        db_session.add(posting)
        db_session.flush()
        application = Application(
            posting_id=posting.id,
            student_user_id=student.id,
            resume_id=resume.id if resume is not None else None,
        )
        db_session.add(application)
        db_session.commit()
        db_session.refresh(application)
        return application

    return _make


@pytest.fixture()
def client_for(app):
    """
    Context manager to create a client authenticated as an arbitrary actor.

    Usage:
        with client_for(people.student_actor) as c:
            ...
    """

    @contextmanager
    def _client_for(actor: Actor):
        app.dependency_overrides[get_current_actor] = lambda: actor
        with TestClient(app) as c:
            yield c
        app.dependency_overrides.pop(get_current_actor, None)

    return _client_for


@pytest.fixture()
def anon_client(app):
    with TestClient(app) as c:
        yield c
