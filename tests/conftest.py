import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("REDIS_URL", "")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from app.core.cache import CacheManager, MemoryCacheBackend
from app.core.database import Base
from app.utils import deps as deps_utils
import main
from fastapi.testclient import TestClient
from app.crud.course import course as crud_course
from app.crud.user import user as crud_user
from app.core.security import get_password_hash
from app.models.course import Course
from app.models.user import User
from app.core.config import settings

test_db_url = settings.TEST_DATABASE_URL or "sqlite:///./test.db"

ADMIN_PASSWORD = "testpass123"

@pytest.fixture(scope="session")
def database_engine():
    if test_db_url.startswith("sqlite"):
        engine = create_engine(test_db_url, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(test_db_url)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()
    if test_db_url.startswith("sqlite") and os.path.exists("./test.db"):
        os.remove("./test.db")

@pytest.fixture(scope="function")
def db_session(database_engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=database_engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.query(Course).delete()
        db.query(User).delete()
        db.commit()
        db.close()

@pytest.fixture(scope="function")
def cache():
    return CacheManager(MemoryCacheBackend(), enabled=True, default_ttl=300)

@pytest.fixture(scope="function")
def client(db_session, cache):
    # Re-initialize the app for each test function to ensure a clean state
    from importlib import reload
    reload(main)
    main.app.dependency_overrides[deps_utils.get_db] = lambda: db_session
    main.app.dependency_overrides[deps_utils.get_cache] = lambda: cache
    with TestClient(main.app) as test_client:
        yield test_client

@pytest.fixture
def admin_factory(db_session):
    def _admin_factory(email="admin@test.com", password=ADMIN_PASSWORD, role="admin"):
        return crud_user.create(db_session, obj_in={
            "email": email,
            "hashed_password": get_password_hash(password),
            "role": role,
        })
    return _admin_factory

@pytest.fixture
def admin_token(client, admin_factory):
    admin = admin_factory()
    response = client.post("/auth/login", json={"email": admin.email, "password": ADMIN_PASSWORD})
    body = response.json()
    token = body.get("data", {}).get("token", {}).get("access_token")
    assert token, f"Login failed or token missing: {body}"
    return token

@pytest.fixture
def admin_headers(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}

@pytest.fixture
def course_data():
    def _course_data(course_id="CS101", **overrides):
        data = {
            "course_id": course_id,
            "title": "Introduction to Computer Science",
            "description": "Fundamentals of programming and computational thinking.",
            "category": "Computer Science",
            "instructor": "Dr. Ada Lovelace",
            "duration": "12 weeks",
            "price": "$499",
            "rating": 4.2,
            "skill_level": "beginner",
        }
        data.update(overrides)
        return data
    return _course_data

@pytest.fixture
def course_factory(db_session, course_data):
    def _course_factory(course_id="CS101", **overrides):
        return crud_course.create(db_session, obj_in=course_data(course_id, **overrides))
    return _course_factory
