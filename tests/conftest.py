import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel
from sqlmodel.pool import StaticPool

from api.auth.models import User, UserRole
from api.uploads.storage import LocalFileStore
from core.db import Database
from core.deps import get_analysis_service, get_db, get_file_store
from core.security import create_access_token, hash_password
from main import app


class RecordingAnalysisService:
    """Analysis stub that remembers every stored file handed to it"""

    def __init__(self):
        self.submitted = []

    def submit(self, stored_file):
        self.submitted.append(stored_file)


@pytest.fixture(name="database")
def database_fixture():
    db = Database("sqlite://", poolclass=StaticPool)
    db.connect(max_retries=1, retry_delay=0)
    SQLModel.metadata.create_all(db.engine)
    yield db
    SQLModel.metadata.drop_all(db.engine)
    db.disconnect()


@pytest.fixture(name="session")
def session_fixture(database: Database):
    with Session(database.engine) as session:
        yield session


@pytest.fixture(name="upload_dir")
def upload_dir_fixture(tmp_path):
    return tmp_path / "public"


@pytest.fixture(name="file_store")
def file_store_fixture(upload_dir):
    return LocalFileStore(upload_dir)


@pytest.fixture(name="analysis_service")
def analysis_service_fixture():
    return RecordingAnalysisService()


@pytest.fixture(name="client")
def client_fixture(
    session: Session,
    database: Database,
    file_store: LocalFileStore,
    analysis_service: RecordingAnalysisService,
):
    def get_db_override():
        return session

    app.dependency_overrides[get_db] = get_db_override
    app.dependency_overrides[get_file_store] = lambda: file_store
    app.dependency_overrides[get_analysis_service] = lambda: analysis_service
    app.state.db = database

    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


def _make_user(session: Session, email: str, username: str, role: UserRole) -> User:
    user = User(
        email=email,
        username=username,
        hashed_password=hash_password("TestPassword123"),
        full_name=username.title(),
        role=role,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture(name="test_user")
def test_user_fixture(session: Session):
    return _make_user(session, "testuser@example.com", "testuser", UserRole.USER)


@pytest.fixture(name="admin_user")
def admin_user_fixture(session: Session):
    return _make_user(session, "admin@example.com", "admin", UserRole.ADMIN)


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(name="user_headers")
def user_headers_fixture(test_user: User):
    return auth_headers(test_user)


@pytest.fixture(name="admin_headers")
def admin_headers_fixture(admin_user: User):
    return auth_headers(admin_user)
