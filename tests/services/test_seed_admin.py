from app.core.security import verify_password
from app.seed_admin import DEFAULT_ADMIN_EMAIL, DEFAULT_ADMIN_PASSWORD, seed_admin


def test_seed_admin_is_idempotent(db_session):
    first = seed_admin(db_session)
    second = seed_admin(db_session)

    assert first.id == second.id
    assert first.email == DEFAULT_ADMIN_EMAIL
    assert first.role == "admin"
    assert verify_password(DEFAULT_ADMIN_PASSWORD, first.hashed_password)
