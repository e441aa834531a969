# main.py
"""
Single Database Multi-Tenant School Fee Service
Path-based routing with tenant scoping under /api/<tenant_slug>/
"""

import logging
from flask import Flask, jsonify
from flask_login import LoginManager

# --- local modules ---
from config import config
from db_single import get_session
from models import User
from cli_commands import register_cli_commands
from init_db import run_on_startup


def create_app(config_name: str = 'default') -> Flask:
    """Create the fee service application"""
    config_class = config[config_name]

    app = Flask(__name__)
    app.config.from_object(config_class)

    # Logging
    logging.basicConfig(level=getattr(logging, app.config['LOG_LEVEL'].upper(), logging.INFO))
    logger = logging.getLogger(__name__)

    # DB init and integrity check
    if not run_on_startup(config_class()):
        logger.warning("[WARNING] Database initialization had issues! Application will continue "
                       "but may not work correctly.")

    # Flask-Login
    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str):
        try:
            if "_" in user_id:
                t = user_id.split("_")
                if t[0] == "admin":
                    s = get_session()
                    try:
                        return s.query(User).filter_by(
                            id=int(t[1]), role="portal_admin"
                        ).first()
                    finally:
                        s.close()
                elif t[0] == "school" and len(t) >= 3:
                    tenant_id, actual_id = t[1], t[2]
                    s = get_session()
                    try:
                        return s.query(User).filter_by(
                            id=int(actual_id), tenant_id=int(tenant_id)
                        ).first()
                    finally:
                        s.close()
        except Exception as e:
            logger.error(f"user_loader error: {e}")
        return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'success': False, 'message': 'Authentication required'}), 401

    # CLI
    register_cli_commands(app)

    # Fee API blueprint
    from fee_routes import create_fee_blueprint
    app.register_blueprint(create_fee_blueprint(), url_prefix="/api")
    logger.info("✅ Fee API blueprint registered")

    @app.route("/_healthz")
    def healthz():
        return jsonify({'status': 'ok'})

    @app.errorhandler(404)
    def nf(_):
        return jsonify({'success': False, 'message': 'Not found'}), 404

    @app.errorhandler(500)
    def ie(_):
        return jsonify({'success': False, 'message': 'Internal error'}), 500

    # ===== OPTIONAL: Start background fee reminder scheduler =====
    # For production, use cron job instead: flask send-fee-reminders
    if app.config.get('ENABLE_FEE_REMINDER_SCHEDULER'):
        try:
            from fee_reminder_scheduler import start_background_scheduler
            scheduler_interval = app.config['FEE_REMINDER_INTERVAL']
            start_background_scheduler(scheduler_interval)
            logger.info(f"✅ Fee reminder scheduler started (interval: {scheduler_interval}s)")
        except Exception as e:
            logger.error(f"❌ Failed to start fee reminder scheduler: {e}")

    return app


if __name__ == "__main__":
    app = create_app('development')
    app.run(debug=True, host="0.0.0.0", port=5000, use_reloader=False)
