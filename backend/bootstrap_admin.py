"""Bootstrap the initial admin user.

Usage (from backend directory, inside venv):

    ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD=secret python bootstrap_admin.py

Creates the admin, or reactivates an existing account with that email and
promotes it to admin. ADMIN_NAME is optional.
"""
import os
import sys

from auth_utils import hash_password
from models import User, get_db, init_db


def bootstrap_admin(email, password, name='Admin'):
    init_db()
    db = get_db()
    try:
        email = email.strip().lower()
        admin = db.query(User).filter(User.email == email).first()
        if admin:
            admin.is_active = True
            admin.role = 'admin'
            if password:
                admin.password_hash = hash_password(password)
            db.commit()
            print(f"Admin user already exists, ensured active and role=admin: {email}")
            return admin.id

        admin = User(
            name=name,
            email=email,
            password_hash=hash_password(password),
            role='admin',
            is_active=True,
        )
        db.add(admin)
        db.commit()
        print(f"✅ Admin user created: {email}")
        return admin.id
    finally:
        db.close()


if __name__ == "__main__":
    admin_email = os.getenv('ADMIN_EMAIL')
    admin_password = os.getenv('ADMIN_PASSWORD')
    if not admin_email or not admin_password:
        print("❌ ADMIN_EMAIL and ADMIN_PASSWORD must be set")
        sys.exit(1)
    bootstrap_admin(admin_email, admin_password, os.getenv('ADMIN_NAME', 'Admin'))
