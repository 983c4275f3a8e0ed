import os
import time
import logging
import threading
import traceback
from logging.handlers import RotatingFileHandler

from flask import Flask, jsonify, request
from flask_login import LoginManager

from utils.helpers import PROJECT_ROOT, config_section, load_config
from database import db
from database.models import (
    CareerStats,
    FailedLoginAttempt,
    LocalMatch,
    MatchScorecard,
    User as DBUser,
)
from engine.errors import IllegalStateTransitionError, ScoringError
from engine.match import Match
from engine.player import build_roster
from engine.toss import (
    TossResult,
    build_match_setup,
    call_toss,
    decide_random_toss,
    resolve_manual_toss,
    resolve_random_toss,
    validate_match_overs,
)
from auth.user_auth import (
    is_valid_email,
    register_user,
    validate_password_policy,
    verify_user,
)
from match_archiver import ArchiveWorker, MatchArchiver, format_scorecard
from routes.auth_routes import register_auth_routes
from routes.match_routes import register_match_routes
from routes.stats_routes import register_stats_routes


MATCH_INSTANCES = {}
MATCH_INSTANCES_LOCK = threading.Lock()

# How old is “too old”? 7 days → 7*24*3600 seconds
PROD_MAX_AGE = 7 * 24 * 3600


def cleanup_old_match_instances(app, max_age_seconds=PROD_MAX_AGE):
    """Drop match controllers idle for max_age_seconds; live ones are replayed on their next request"""
    try:
        cutoff_time = time.time() - max_age_seconds

        with MATCH_INSTANCES_LOCK:
            instances_to_remove = [
                match_id for match_id, instance in MATCH_INSTANCES.items()
                if instance.updated_at < cutoff_time
            ]
            for match_id in instances_to_remove:
                del MATCH_INSTANCES[match_id]
                app.logger.info(f"[Cleanup] Removed old match instance: {match_id}")

        if instances_to_remove:
            app.logger.info(f"[Cleanup] Cleaned up {len(instances_to_remove)} old match instances")
        return len(instances_to_remove)

    except Exception as e:
        app.logger.error(f"[Cleanup] Error cleaning up match instances: {e}", exc_info=True)
        return 0


def periodic_cleanup(app, max_age_seconds=PROD_MAX_AGE):
    """Run cleanup every 6 hours"""
    while True:
        try:
            time.sleep(6 * 3600)
            cleanup_old_match_instances(app, max_age_seconds)
        except Exception as e:
            app.logger.error(f"[PeriodicCleanup] Error in cleanup thread: {e}")


def _configure_logging(app, logging_config):
    log_dir = logging_config.get("dir", "logs")
    if not os.path.isabs(log_dir):
        log_dir = os.path.join(PROJECT_ROOT, log_dir)
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, "execution.log")
    level = getattr(logging, str(logging_config.get("level", "DEBUG")).upper(), logging.DEBUG)

    # Clear existing handlers to avoid duplicates
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    # File handler for persistent logging
    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=int(logging_config.get("max_bytes", 10 * 1024 * 1024)),
        backupCount=int(logging_config.get("backup_count", 5)),
        encoding='utf-8'
    )
    file_handler.setLevel(level)

    # Console handler for terminal visibility
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    # Formatter for both
    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    file_handler.setFormatter(formatter)
    console_handler.setFormatter(formatter)

    # Setup logging globally
    logging.basicConfig(level=level, handlers=[file_handler, console_handler])

    # Attach logger to app
    app.logger = logging.getLogger("CreaseLive")
    app.logger.setLevel(level)


# ────── App Factory ──────
def create_app():
    # --- Flask setup ---
    app = Flask(__name__)
    config = load_config()

    _configure_logging(app, config_section(config, "logging"))

    # --- Secret key setup ---
    secret = config_section(config, "app").get("secret_key")
    if not secret or not isinstance(secret, str):
        app.logger.warning("[Config] No secret_key in config.yaml, trying FLASK_SECRET_KEY")
        secret = os.getenv("FLASK_SECRET_KEY", None)
        if not secret:
            secret = os.urandom(24).hex()
            app.logger.warning("[Config] Using random Flask SECRET_KEY, sessions won't persist across restarts")

    app.config["SECRET_KEY"] = secret
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"

    # --- Database setup ---
    db_uri = os.getenv("CREASELIVE_DB_URI") or config_section(config, "database").get("uri")
    if not db_uri:
        db_uri = f"sqlite:///{os.path.join(PROJECT_ROOT, 'creaselive.db')}"
    app.config["SQLALCHEMY_DATABASE_URI"] = db_uri
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    db.init_app(app)
    with app.app_context():
        db.create_all()

    # --- Flask-Login setup ---
    login_manager = LoginManager(app)
    login_manager.login_view = "login"

    @login_manager.user_loader
    def load_user(email):
        return db.session.get(DBUser, email)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "unauthorized", "message": "Login required"}), 401

    # --- Request logging ---
    @app.before_request
    def log_request():
        app.logger.info(f"{request.remote_addr} {request.method} {request.path}")

    # --- Error handling ---
    @app.errorhandler(ScoringError)
    def handle_scoring_error(e):
        status = 409 if isinstance(e, IllegalStateTransitionError) else 400
        app.logger.warning(f"[Scoring] {request.method} {request.path} rejected: {e.code}: {e}")
        return jsonify(e.to_dict()), status

    @app.errorhandler(500)
    def handle_server_error(e):
        app.logger.error(f"Unhandled error on {request.path}: {e}", exc_info=True)
        return jsonify({"error": "server_error", "message": "Internal server error"}), 500

    # --- Persistence worker ---
    persistence = config_section(config, "persistence")
    archive_worker = ArchiveWorker(
        app,
        MatchArchiver(db),
        max_retries=int(persistence.get("max_retries", 3)),
        retry_delay=float(persistence.get("retry_delay_seconds", 1.0)),
        run_async=bool(persistence.get("async", True)),
    )
    archive_worker.start()
    app.extensions["archive_worker"] = archive_worker

    match_config = config_section(config, "match")
    app.config["MATCH_MAX_AGE"] = int(match_config.get("instance_max_age_seconds", PROD_MAX_AGE))

    register_auth_routes(
        app,
        db=db,
        register_user=register_user,
        verify_user=verify_user,
        validate_password_policy=validate_password_policy,
        is_valid_email=is_valid_email,
        DBUser=DBUser,
        FailedLoginAttempt=FailedLoginAttempt,
    )
    register_match_routes(
        app,
        db=db,
        Match=Match,
        LocalMatch=LocalMatch,
        MATCH_INSTANCES=MATCH_INSTANCES,
        MATCH_INSTANCES_LOCK=MATCH_INSTANCES_LOCK,
        archive_worker=archive_worker,
        build_match_setup=build_match_setup,
        build_roster=build_roster,
        validate_match_overs=validate_match_overs,
        TossResult=TossResult,
        resolve_manual_toss=resolve_manual_toss,
        resolve_random_toss=resolve_random_toss,
        call_toss=call_toss,
        decide_random_toss=decide_random_toss,
        format_scorecard=format_scorecard,
        match_config=match_config,
        poll_interval=int(config_section(config, "spectators").get("poll_interval_seconds", 5)),
    )
    register_stats_routes(
        app,
        db=db,
        DBUser=DBUser,
        CareerStats=CareerStats,
        MatchScorecard=MatchScorecard,
    )

    return app

# ────── Run Server ──────
if __name__ == "__main__":
    try:
        app = create_app()

        HOST = "127.0.0.1"
        PORT = 7860
        print("✅ CreaseLive is up and running!")
        print(f"🌐 Access the app at: http://{HOST}:{PORT}")
        print("🔐 Press Ctrl+C to stop the server.\n")

        threading.Thread(
            target=periodic_cleanup, args=(app, app.config["MATCH_MAX_AGE"]), daemon=True
        ).start()

        app.run(host=HOST, port=PORT, debug=True, use_reloader=False)

    except Exception as e:
        print("❌ Failed to start CreaseLive:")
        traceback.print_exc()
