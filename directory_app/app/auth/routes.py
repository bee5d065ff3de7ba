from __future__ import annotations
from flask import Blueprint, current_app, jsonify, request, session
from flask_login import current_user, login_required, login_user, logout_user

from ..forms import LoginForm
from ..models import User

auth_bp = Blueprint("auth", __name__)

SUPPORTED_LANGUAGES = ("en", "hi")


@auth_bp.route("/set-language", methods=["POST"])
def set_language():
    lang = (request.get_json(silent=True) or {}).get("lang") or request.form.get("lang")
    if lang in SUPPORTED_LANGUAGES:
        session["lang"] = lang
    return jsonify({"lang": session.get("lang")})


@auth_bp.route("/login", methods=["POST"])
def login():
    form = LoginForm().validate_or_raise()
    user = User.query.filter_by(email=form.email.data.strip().lower()).first()
    if user is None or not user.check_password(form.password.data):
        current_app.logger.info("Failed login for %s", form.email.data)
        return jsonify({"error": "Invalid email or password", "code": "invalid_credentials"}), 401
    if not user.confirmed:
        return jsonify({"error": "Email address not confirmed", "code": "unconfirmed"}), 403
    login_user(user)
    return jsonify({"user_id": user.id, "email": user.email})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    current_app.logger.info("User %s logged out", current_user.id)
    logout_user()
    # a role hint belongs to the session that made it
    session.pop("selected_role", None)
    session.pop("selected_organization_id", None)
    return jsonify({"logged_out": True})
