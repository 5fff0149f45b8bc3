"""
Create (or look up) a document owner and print a bearer token for the owner API.
No login flow is needed for local testing.

Run from project root:
  python scripts/create_owner.py [email] [full name]

Use the printed token as: Authorization: Bearer <token>
"""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.database import Base, SessionLocal, engine
from app.models.user import User
from app.services.auth import create_access_token

DEFAULT_EMAIL = "owner@openproposal.demo"
DEFAULT_FULL_NAME = "Test Owner"


def main():
    email = (sys.argv[1] if len(sys.argv) > 1 else DEFAULT_EMAIL).strip().lower()
    full_name = (sys.argv[2] if len(sys.argv) > 2 else DEFAULT_FULL_NAME).strip()

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email).first()
        if user:
            print(f"Owner already exists: {email} (id={user.id})")
        else:
            user = User(email=email, full_name=full_name or None)
            db.add(user)
            db.commit()
            db.refresh(user)
            print(f"Created owner: {email} (id={user.id})")
        print()
        print("Bearer token:")
        print(create_access_token(user.id, user.email))
    finally:
        db.close()


if __name__ == "__main__":
    main()
