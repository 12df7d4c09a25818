# create_tables.py
import os

from app.database import Base, engine, SessionLocal
import app.models  # noqa: F401  registers every table on Base.metadata
from app.models.user import User, AppRole
from app.utils.security import hash_password


def create_tables(drop_existing: bool = False):
    """Create all tables, optionally dropping the existing schema first"""
    try:
        if drop_existing:
            Base.metadata.drop_all(bind=engine)
            print("🗑️  Existing tables dropped")

        Base.metadata.create_all(bind=engine)
        print("✅ All tables created successfully!")

        create_default_admin()

    except Exception as e:
        print(f"❌ Error creating tables: {e}")
        raise


def create_default_admin():
    """Create the first admin account when none exists"""
    email = os.getenv("ADMIN_EMAIL", "admin@example.com")
    password = os.getenv("ADMIN_PASSWORD", "admin123")

    db = SessionLocal()
    try:
        if db.query(User).filter(User.role == AppRole.ADMIN.value).first():
            print("ℹ️  Admin user already exists")
            return

        db.add(User(
            email=email,
            full_name="System Administrator",
            hashed_password=hash_password(password),
            role=AppRole.ADMIN.value,
            must_change_password=True,
        ))
        db.commit()
        print("✅ Default admin user created!")
        print(f"   Email: {email}")
        print(f"   Password: {password} (change it on first login)")
    finally:
        db.close()


if __name__ == "__main__":
    create_tables(drop_existing=os.getenv("DROP_EXISTING", "false").lower() == "true")
