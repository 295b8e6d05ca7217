"""Create a super admin for the HOA Violation Tracker platform.

Run: `python -m hoa_tracker.manage_create_admin --email admin@example.com --password changeme`
"""

import argparse
from contextlib import contextmanager

from hoa_tracker.config import Base, SessionLocal, engine
from hoa_tracker.constants import ROLE_SUPER_ADMIN, USERS_COLLECTION
from hoa_tracker.services.documents import SqlDocumentStore
from hoa_tracker.services.identity import IdentityError, LocalAuthService
from hoa_tracker.services.users import build_admin_record, write_admin_user


@contextmanager
def session_scope():
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_super_admin(db, email: str, password: str, first_name: str, last_name: str) -> str:
    store = SqlDocumentStore(db)
    auth = LocalAuthService(db)
    existing = auth.get_principal_by_email(email)
    if existing:
        if store.exists(USERS_COLLECTION, existing.uid):
            raise SystemExit("User already exists with that email.")
        principal_id = existing.uid
    else:
        principal_id = auth.create_principal(email, password)
    record = build_admin_record(email=email, first_name=first_name, last_name=last_name, role=ROLE_SUPER_ADMIN)
    write_admin_user(store, principal_id, record)
    return principal_id


def main(argv=None):
    parser = argparse.ArgumentParser(description="Create a super admin user")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--first-name", default="Super")
    parser.add_argument("--last-name", default="Admin")
    args = parser.parse_args(argv)

    Base.metadata.create_all(bind=engine)
    with session_scope() as db:
        try:
            principal_id = create_super_admin(db, args.email, args.password, args.first_name, args.last_name)
        except IdentityError as exc:
            raise SystemExit(f"Could not create login: {exc}") from exc
        print(f"Created super admin with id {principal_id}")


if __name__ == "__main__":
    main()
