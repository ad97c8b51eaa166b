"""
Resale Escrow Service - Flask application
Escrow settlement, payouts, disputes and listing fraud checks for ticket resale.
"""

import logging
from datetime import datetime, timezone

from flask import Flask, jsonify
from flasgger import Swagger

from resale_escrow.config import Config
from resale_escrow.errors import EscrowError
from resale_escrow.extensions import db, jwt
from resale_escrow.services import build_services

logger = logging.getLogger(__name__)


def create_app(config=None, stripe_client=None, reputation_client=None):
    app = Flask(__name__)

    # Configuration
    app.config.from_object(Config)
    if config:
        app.config.update(config)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Initialize Extensions
    if app.config.get('SQLALCHEMY_DATABASE_URI'):
        db.init_app(app)
    else:
        logger.error("No database configured (set DATABASE_URL or DB_PASS)")
    jwt.init_app(app)

    from resale_escrow import models  # noqa: F401  register tables

    app.extensions['escrow'] = build_services(
        app.config,
        stripe_client=stripe_client,
        reputation_client=reputation_client,
    )

    register_error_handlers(app)

    Swagger(app, config={
        "headers": [],
        "specs": [
            {
                "endpoint": 'apispec_1',
                "route": '/apispec_1.json',
                "rule_filter": lambda rule: True,  # all in
                "model_filter": lambda tag: True,  # all in
            }
        ],
        "static_url_path": "/flasgger_static",
        "swagger_ui": True,
        "specs_route": "/apidocs/"
    })

    # Register Blueprints
    from resale_escrow.routes.settlement import settlement_bp
    app.register_blueprint(settlement_bp)

    from resale_escrow.routes.fraud import fraud_bp
    app.register_blueprint(fraud_bp)

    from resale_escrow.routes.orders import orders_bp
    app.register_blueprint(orders_bp)

    from resale_escrow.routes.webhooks import webhooks_bp
    app.register_blueprint(webhooks_bp)

    # --- Health check ---------------------------------------------------
    @app.route('/health')
    def health():
        body = {
            "service": "resale-escrow-service",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if not app.config.get('SQLALCHEMY_DATABASE_URI'):
            return jsonify({**body, "status": "unhealthy", "error": "Database not configured"}), 503
        try:
            db.session.execute(db.text('SELECT 1'))
            return jsonify({**body, "status": "healthy"}), 200
        except Exception as e:
            return jsonify({**body, "status": "unhealthy", "error": str(e)}), 503

    if app.config.get('AUTO_CREATE_TABLES') and app.config.get('SQLALCHEMY_DATABASE_URI'):
        with app.app_context():
            db.create_all()

    return app


def register_error_handlers(app):
    @app.errorhandler(EscrowError)
    def handle_escrow_error(e):
        if app.config.get('SQLALCHEMY_DATABASE_URI'):
            db.session.rollback()
        if e.status_code >= 500:
            logger.error(f"{e.__class__.__name__}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @jwt.unauthorized_loader
    def missing_token(reason):
        return jsonify({'error': 'Unauthorized'}), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return jsonify({'error': 'Unauthorized - Invalid token'}), 401

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return jsonify({'error': 'Unauthorized - Token expired'}), 401


if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=5004)
