"""
Create the first admin, or promote an existing account to admin

Usage:
    python seed_admin.py admin@example.com 'SecurePass123!'
"""
import logging
import sys

from sqlalchemy.orm import Session

from farmhub.core.config import get_settings
from farmhub.core.database import create_db_engine, create_session_factory, init_db
from farmhub.core.permissions import ADMIN_ROLE
from farmhub.core.security import hash_password
from farmhub.models import User
from farmhub.services.role_service import RoleService, seed_permissions_and_roles
from farmhub.utils.date import utc_now

logger = logging.getLogger(__name__)


def ensure_admin(db: Session, email: str, password: str, rounds: int = 12) -> User:
    """Idempotent: an existing account keeps its password and is only promoted"""
    seed_permissions_and_roles(db)
    admin_role = RoleService(db).get_by_name(ADMIN_ROLE)

    email = email.strip().lower()
    user = db.query(User).filter(User.email == email).first()
    if user:
        user.role_id = admin_role.id
        user.is_active = True
        user.deleted_at = None
        logger.info(f"Promoted {email} to {ADMIN_ROLE}")
    else:
        user = User(
            email=email,
            password_hash=hash_password(password, rounds),
            first_name="System",
            last_name="Administrator",
            role_id=admin_role.id,
            is_active=True,
            email_verified=True,
            email_verified_at=utc_now(),
        )
        db.add(user)
        logger.info(f"Created admin {email}")

    db.commit()
    db.refresh(user)
    return user


def main(argv) -> int:
    if len(argv) != 3:
        print(__doc__)
        return 1

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    settings = get_settings()
    engine = create_db_engine(settings)
    init_db(engine)
    db = create_session_factory(engine)()
    try:
        user = ensure_admin(db, argv[1], argv[2], settings.BCRYPT_ROUNDS)
        print("=" * 60)
        print(f"Admin ready: {user.email}")
        print("=" * 60)
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
