"""
Shared fixtures

Every test gets its own application instance and SQLite file, so rate-limit
counters, the in-memory cache and the database never leak between tests.
"""
import os

# main.py builds a module-level app from the environment on import
os.environ.setdefault("JWT_ACCESS_SECRET", "env-access-secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "env-refresh-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient

from farmhub.core.config import Settings
from farmhub.core.security import TokenClaims, TokenKind, hash_password
from farmhub.models import Farm, FarmMembership, FarmRole, Role, User
from farmhub.utils.date import utc_now
from main import create_app

PASSWORD = "SecurePass123"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'farmhub.db'}",
        JWT_ACCESS_SECRET="access-secret-for-tests",
        JWT_REFRESH_SECRET="refresh-secret-for-tests",
        BCRYPT_ROUNDS=4,
        REDIS_URL=None,
        CACHE_CLEANUP_INTERVAL_SECONDS=0,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    """Test client fixture; entering it runs startup (tables and role seeding)"""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db(app, client):
    session = app.state.session_factory()
    yield session
    session.close()


@pytest.fixture
def make_user(db, settings):
    def _make_user(email, role_name="viewer", is_active=True, email_verified=True):
        role = db.query(Role).filter(Role.name == role_name).one()
        user = User(
            email=email,
            password_hash=hash_password(PASSWORD, settings.BCRYPT_ROUNDS),
            first_name="Test",
            last_name="User",
            role_id=role.id,
            is_active=is_active,
            email_verified=email_verified,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_farm(db):
    """Farm with its owner already holding the OWNER membership"""

    def _make_farm(owner, name="Green Acres", is_active=True):
        farm = Farm(name=name, owner_id=owner.id, is_active=is_active)
        db.add(farm)
        db.flush()
        db.add(
            FarmMembership(
                farm_id=farm.id,
                user_id=owner.id,
                role=FarmRole.OWNER,
                is_active=True,
                joined_at=utc_now(),
            )
        )
        db.commit()
        db.refresh(farm)
        return farm

    return _make_farm


@pytest.fixture
def add_member(db):
    def _add_member(farm, user, role):
        membership = FarmMembership(
            farm_id=farm.id,
            user_id=user.id,
            role=role,
            is_active=True,
            joined_at=utc_now(),
        )
        db.add(membership)
        db.commit()
        return membership

    return _add_member


@pytest.fixture
def auth_headers(app):
    """Bearer (and optionally X-Farm-Id) headers for a user"""

    def _auth_headers(user, farm=None, token_farm=None):
        claims = TokenClaims(
            subject_id=str(user.id),
            email=user.email,
            role_id=str(user.role_id),
            farm_id=str(token_farm.id) if token_farm is not None else None,
        )
        token = app.state.token_codec.issue(claims, TokenKind.ACCESS)
        headers = {"Authorization": f"Bearer {token}"}
        if farm is not None:
            headers["X-Farm-Id"] = str(farm.id)
        return headers

    return _auth_headers
