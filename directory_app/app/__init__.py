from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_wtf import CSRFProtect
from .config import Config
from flask_babel import Babel

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()
babel = Babel()

def create_app(config=None):
    app = Flask(__name__)
    app.config.from_object(config or Config)

    # Configure logging
    import logging
    app.logger.setLevel(logging.INFO)
    handler = logging.StreamHandler()
    handler.setLevel(logging.INFO)
    formatter = logging.Formatter('[%(asctime)s] %(levelname)s in %(module)s: %(message)s')
    handler.setFormatter(formatter)
    app.logger.addHandler(handler)

    # If using a file-based SQLite URI, ensure the parent directory exists so the DB file can be created.
    db_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if db_uri and db_uri.startswith("sqlite:") and "///" in db_uri and ":memory:" not in db_uri:
        from pathlib import Path
        parent = Path(db_uri.split("///", 1)[1]).parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            app.logger.warning("Could not create directory %s for the SQLite database", parent)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    from .models import User

    @login_manager.user_loader
    def load_user(user_id: str):
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Authentication required", "code": "unauthenticated"}), 401

    csrf.init_app(app)

    def get_locale():
        # allow user override via session, else Accept-Language
        from flask import session, request, has_request_context
        if not has_request_context():
            return None
        if session.get('lang'):
            return session.get('lang')
        return request.accept_languages.best_match(['en', 'hi'])

    babel.init_app(app, locale_selector=get_locale)

    @app.after_request
    def set_security_headers(response):
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        return response

    # readiness/liveness probe
    @app.route("/health", methods=["GET"])
    def health_check():
        return ("OK", 200)

    from .errors import InvitationError

    @app.errorhandler(InvitationError)
    def handle_invitation_error(exc: InvitationError):
        return jsonify(exc.to_dict()), exc.status_code

    from .auth.routes import auth_bp
    from .invitations.routes import invitations_bp
    from .roles.routes import roles_bp

    # JSON API blueprints use session auth; CSRF tokens are not issued to API clients
    csrf.exempt(auth_bp)
    csrf.exempt(invitations_bp)
    csrf.exempt(roles_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(invitations_bp, url_prefix="/api/v1")
    app.register_blueprint(roles_bp, url_prefix="/api/v1")

    from .cli import scheduler_cli, invitations_cli

    app.cli.add_command(scheduler_cli)
    app.cli.add_command(invitations_cli)

    return app
