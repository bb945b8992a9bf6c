"""Registration, login and session endpoints"""
import logging
from datetime import datetime

from flask import Blueprint, g, jsonify
from flask_login import current_user, login_required

from auth_utils import (
    clear_token_cookie, create_access_token, hash_password, mask_email, set_token_cookie, verify_password,
)
from models import User, get_db
from schemas import LoginRequest, RegisterRequest, validate_body

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def _token_response(user, message, status=200):
    token = create_access_token(user)
    response = jsonify({
        'message': message,
        'token': token,
        'user': user.to_public_dict(),
    })
    response.status_code = status
    return set_token_cookie(response, token)


@auth_bp.route('/register', methods=['POST'])
@validate_body(RegisterRequest)
def register():
    data = g.body
    db = get_db()
    try:
        if db.query(User).filter(User.email == data.email).first():
            return jsonify({'error': 'Email already registered'}), 400

        user = User(
            name=data.name,
            email=data.email,
            password_hash=hash_password(data.password),
            role='user',
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info(f"[AUTH] registered: id={user.id}, email={mask_email(user.email)}")
        return _token_response(user, 'Registration successful', 201)
    finally:
        db.close()


@auth_bp.route('/login', methods=['POST'])
@validate_body(LoginRequest)
def login():
    data = g.body
    db = get_db()
    try:
        user = db.query(User).filter(User.email == data.email).first()
        if not user:
            return jsonify({'error': 'Invalid email or password'}), 401
        if not user.is_active:
            return jsonify({'error': 'Account is deactivated'}), 401
        if not verify_password(data.password, user.password_hash):
            return jsonify({'error': 'Invalid email or password'}), 401

        user.last_login = datetime.utcnow()
        db.commit()
        db.refresh(user)
        logger.info(f"[AUTH] login success: id={user.id}, email={mask_email(user.email)}, role={user.role}")
        return _token_response(user, 'Login successful')
    finally:
        db.close()


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    response = jsonify({'message': 'Logged out successfully'})
    return clear_token_cookie(response)


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    db = get_db()
    try:
        user = db.get(User, current_user.id)
        if user is None:
            return jsonify({'error': 'User not found'}), 404
        return jsonify({'user': user.to_public_dict()})
    finally:
        db.close()


@auth_bp.route('/admin/create', methods=['POST'])
@validate_body(RegisterRequest)
def create_first_admin():
    """First-time setup: only works while no admin exists."""
    data = g.body
    db = get_db()
    try:
        if db.query(User).filter(User.role == 'admin').first():
            return jsonify({'error': 'Admin account already exists'}), 403
        if db.query(User).filter(User.email == data.email).first():
            return jsonify({'error': 'Email already registered'}), 400

        admin = User(
            name=data.name,
            email=data.email,
            password_hash=hash_password(data.password),
            role='admin',
            is_active=True,
        )
        db.add(admin)
        db.commit()
        db.refresh(admin)
        logger.info(f"[AUTH] first admin created: {mask_email(admin.email)}")
        return _token_response(admin, 'Admin account created successfully', 201)
    finally:
        db.close()
