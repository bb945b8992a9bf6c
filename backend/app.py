"""
Flask API for the multilingual news CMS
"""
import logging
from datetime import datetime

import jwt
from flask import Flask, g, jsonify, request
from flask_cors import CORS
from flask_login import LoginManager
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

import config
import language_cache
from api_cache import check_rate_limit, get_cache_stats
from article_routes import articles_bp
from auth_routes import auth_bp
from auth_utils import decode_token, token_from_request
from category_routes import categories_bp
from engagement_routes import engagement_bp
from language_routes import languages_bp
from location_routes import locations_bp
from models import Language, User, ValidationError, get_db, init_db
from scraped_article_routes import scraped_bp
from translate_routes import translate_bp
from upload_routes import upload_bp
from user_routes import users_bp

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
)
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Ensure JSON responses use UTF-8 and do not escape Telugu/Hindi text
app.json.ensure_ascii = False
app.secret_key = config.JWT_SECRET
app.config['MAX_CONTENT_LENGTH'] = config.MAX_UPLOAD_MB * 1024 * 1024

CORS(app, origins=[config.FRONTEND_URL], supports_credentials=True)

login_manager = LoginManager(app)

BLUEPRINTS = (
    auth_bp,
    users_bp,
    categories_bp,
    articles_bp,
    locations_bp,
    upload_bp,
    engagement_bp,
    languages_bp,
    scraped_bp,
    translate_bp,
)
for blueprint in BLUEPRINTS:
    app.register_blueprint(blueprint)

app.before_request(check_rate_limit)


# ==================== Auth ====================

@login_manager.request_loader
def load_user_from_request(req):
    """Resolve the JWT from the Bearer header or the token cookie"""
    token = token_from_request()
    if not token:
        return None
    try:
        payload = decode_token(token)
    except jwt.ExpiredSignatureError:
        g.auth_error = 'Token expired'
        return None
    except jwt.InvalidTokenError:
        g.auth_error = 'Invalid token'
        return None

    db = get_db()
    try:
        user = db.get(User, int(payload['sub']))
    except (KeyError, ValueError):
        g.auth_error = 'Invalid token'
        return None
    finally:
        db.close()

    if user is None:
        g.auth_error = 'User not found'
        return None
    if not user.is_active:
        g.auth_error = 'Account is deactivated'
        return None
    return user


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'error': g.get('auth_error') or 'Not authorized, no token'}), 401


# ==================== Error handlers ====================

@app.errorhandler(ValidationError)
def handle_model_validation(e):
    return jsonify({'error': 'Validation Error', 'details': e.details}), 400


@app.errorhandler(SchemaValidationError)
def handle_schema_validation(e):
    details = [
        {'field': '.'.join(str(part) for part in err['loc']), 'message': err['msg']}
        for err in e.errors()
    ]
    return jsonify({'error': 'Validation Error', 'details': details}), 400


@app.errorhandler(IntegrityError)
def handle_integrity_error(e):
    logger.warning(f"⚠️ Integrity error on {request.path}: {e.orig}")
    return jsonify({'error': 'Duplicate or conflicting value'}), 400


@app.errorhandler(jwt.ExpiredSignatureError)
def handle_expired_token(e):
    return jsonify({'error': 'Token expired'}), 401


@app.errorhandler(jwt.InvalidTokenError)
def handle_invalid_token(e):
    return jsonify({'error': 'Invalid token'}), 401


@app.errorhandler(404)
def handle_not_found(e):
    return jsonify({'error': 'Route not found'}), 404


@app.errorhandler(405)
def handle_method_not_allowed(e):
    return jsonify({'error': 'Method not allowed'}), 405


@app.errorhandler(413)
def handle_too_large(e):
    return jsonify({'error': f"File too large (max {config.MAX_UPLOAD_MB} MB)"}), 413


@app.errorhandler(Exception)
def handle_unexpected(e):
    if isinstance(e, HTTPException):
        return jsonify({'error': e.description}), e.code
    logger.exception(f"❌ Unhandled error on {request.method} {request.path}")
    return jsonify({'error': 'Internal server error'}), 500


@app.route('/api/health')
def health_check():
    return jsonify({
        'status': 'ok',
        'timestamp': datetime.utcnow().isoformat(),
        'cache': get_cache_stats(),
    })


# ==================== Startup ====================

def auto_initialize():
    """Create tables, make sure a default language exists and warm the language cache"""
    init_db()
    logger.info(f"[DB] Connected to database: {config.DATABASE_URL.split('@')[-1]}")

    db = get_db()
    try:
        if db.query(Language.id).first() is None:
            db.add(Language(code='en', name='English', native_name='English', is_default=True, order=0))
            db.commit()
            logger.info("[INIT] ✅ Default language created: en")
        language_cache.refresh(db)
    finally:
        db.close()


# Run auto-initialization when module loads (for Gunicorn)
auto_initialize()


if __name__ == '__main__':
    print("\n" + "=" * 50)
    print("📰 Multilingual News CMS API")
    print("=" * 50 + "\n")
    for key, value in config.get_config_summary().items():
        print(f"   {key}: {value}")
    print("\n")
    app.run(debug=False, use_reloader=False, host='0.0.0.0', port=config.PORT)
