from dotenv import load_dotenv
load_dotenv()
from flask import Flask, request, jsonify
from flask_cors import CORS
from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix
from datetime import datetime
import os
import redis
from flask_compress import Compress

from extensions import db, limiter
from errors import LedgerError


app = Flask(__name__)

IS_PRODUCTION = bool(os.getenv("RENDER") or os.getenv("FLASK_ENV") == "production")

# --- SECRET_KEY (also the JWT secret unless JWT_SECRET is set) ---
secret_key = os.getenv('SECRET_KEY') or os.getenv('FLASK_SECRET_KEY')
if not secret_key:
    # Safe dev fallback to prevent 500s locally. Set SECRET_KEY on Render for production.
    secret_key = 'dev-secret-key-change-me'
app.config['SECRET_KEY'] = secret_key
app.secret_key = secret_key

# Enforce a strong SECRET_KEY in production (do not allow dev fallbacks).
if IS_PRODUCTION and secret_key.startswith("dev-secret-key-change") and not os.getenv("JWT_SECRET"):
    raise RuntimeError("SECRET_KEY or JWT_SECRET must be set to a strong random value in production (Render/FLASK_ENV=production).")


# -------------------------------
# Client IP resolution
# -------------------------------
# Render (and most PaaS) runs behind a reverse proxy. Without ProxyFix,
# request.remote_addr will often be the proxy IP, collapsing many users into one
# rate-limit bucket. We enable ProxyFix only in production/Render contexts.
if IS_PRODUCTION:
    # Trust a single proxy hop (Render's edge proxy)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

_db_url = os.getenv("DATABASE_URL")
if not _db_url:
    if os.getenv("RENDER") == "true":
        raise RuntimeError("DATABASE_URL missing on Render; refusing to use SQLite.")
    _db_url = "sqlite:///light_ledger.db"

if _db_url.startswith("postgres://"):
    _db_url = _db_url.replace("postgres://", "postgresql://", 1)

app.config["SQLALCHEMY_DATABASE_URI"] = _db_url
if _db_url.startswith("sqlite"):
    # Writers wait for the lock instead of failing immediately.
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {"connect_args": {"timeout": 30}}
else:
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
        "pool_recycle": 300,
        "pool_pre_ping": True,
    }

# Rate limiting
# - In production (Render), set RATE_LIMIT_STORAGE_URL to a Redis URL for multi-instance correctness.
# - Defaults to in-memory storage for simplicity.
_rate_limit_storage = os.getenv("RATE_LIMIT_STORAGE_URL", "memory://")
app.config["RATELIMIT_ENABLED"] = os.getenv("RATELIMIT_ENABLED", "1") == "1"
app.config["RATELIMIT_STORAGE_URI"] = _rate_limit_storage
app.config["RATELIMIT_DEFAULT"] = "200 per day;50 per hour"
app.config["RATELIMIT_HEADERS_ENABLED"] = True

# Initialize extensions
db.init_app(app)
CORS(app, resources={r"/api/*": {"origins": "*"}})
limiter.init_app(app)
Compress(app)


def _sqlite_serialize_writers(engine):
    """Open every SQLite transaction with BEGIN IMMEDIATE.

    pysqlite's default deferred BEGIN takes the write lock only at the first
    write, so two readers upgrading at once deadlock and one fails with
    "database is locked". Taking the lock up front makes writers queue instead.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


with app.app_context():
    if db.engine.dialect.name == "sqlite":
        _sqlite_serialize_writers(db.engine)


# Performance-minded headers (safe defaults)
@app.after_request
def add_api_headers(resp):
    try:
        # Ledger responses are per-user; never let a proxy cache them.
        resp.headers.setdefault("Cache-Control", "no-store")
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        if (request.path or "").startswith("/api"):
            resp.headers["X-Robots-Tag"] = "noindex, nofollow"
    except Exception:
        pass
    return resp


# ==================== ERROR HANDLING ====================

@app.errorhandler(LedgerError)
def handle_ledger_error(e):
    return jsonify(e.to_dict()), e.status_code


@app.errorhandler(HTTPException)
def handle_http_error(e):
    return jsonify({
        'success': False,
        'error': (e.name or 'error').lower().replace(' ', '_'),
        'message': e.description,
    }), e.code


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    db.session.rollback()
    app.logger.exception("Unhandled error on %s %s", request.method, request.path)
    return jsonify({
        'success': False,
        'error': 'internal_error',
        'message': 'Something went wrong. Please try again.',
    }), 500


# ==================== HEALTH CHECK ====================

def _rate_limit_store_status():
    if not _rate_limit_storage.startswith(("redis://", "rediss://")):
        return "memory"
    try:
        redis.from_url(_rate_limit_storage, socket_timeout=2).ping()
        return "connected"
    except redis.RedisError:
        return "unreachable"


@app.route('/api/health', methods=['GET'])
@limiter.exempt
def health_check():
    try:
        # SQLAlchemy 2.x requires raw SQL to be wrapped in text().
        db.session.execute(text('SELECT 1'))
        return jsonify({
            'success': True,
            'status': 'healthy',
            'timestamp': datetime.utcnow().isoformat(),
            'database': 'connected',
            'rate_limit_store': _rate_limit_store_status(),
            'version': '1.0.0'
        })
    except SQLAlchemyError as e:
        db.session.rollback()
        return jsonify({
            'success': False,
            'status': 'unhealthy',
            'error': str(e),
            'timestamp': datetime.utcnow().isoformat()
        }), 500


# ==================== LEDGER (SPLIT MODULES) ====================
# Models must be imported before create_all() so their tables are registered.
from models_points import PointsTransaction, UserTier, OneTimeAward  # noqa: F401
from models_activity import Profile, DailyActivity, CommunityAction  # noqa: F401
from models_achievements import Achievement, UserAchievement  # noqa: F401
from models_challenges import ChallengeProgress  # noqa: F401
from models_notifications import Notification  # noqa: F401

from points import points_api
from daily import daily_api
from community import community_api
from achievements import achievements_api, seed_achievements
from challenges import challenges_api
from notifications import notifications_api


app.register_blueprint(points_api)
app.register_blueprint(daily_api)
app.register_blueprint(community_api)
app.register_blueprint(achievements_api)
app.register_blueprint(challenges_api)
app.register_blueprint(notifications_api)

with app.app_context():
    db.create_all()

    # Default achievement catalog (idempotent: only missing rows are inserted).
    if os.getenv("SEED_ACHIEVEMENTS", "1") == "1":
        try:
            seed_achievements()
        except SQLAlchemyError:
            db.session.rollback()
            app.logger.exception("Seeding achievements failed")

if __name__ == '__main__':
    port = int(os.getenv('PORT', 5000))
    debug = os.getenv('FLASK_ENV', 'development') == 'development'

    print("=" * 60)
    print("Light Points & Progression Ledger")
    print("=" * 60)
    print(f"Database: {app.config['SQLALCHEMY_DATABASE_URI'].split('@')[-1]}")
    print(f"Rate limit storage: {_rate_limit_storage.split('@')[-1]}")
    print(f"Ledger timezone: {os.getenv('LEDGER_TIMEZONE') or 'UTC'}")
    print(f"Health: http://localhost:{port}/api/health")
    print("=" * 60)

    app.run(host='0.0.0.0', port=port, debug=debug)
