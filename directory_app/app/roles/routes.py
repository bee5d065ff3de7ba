from __future__ import annotations
from flask import Blueprint, jsonify, request, session
from flask_login import current_user, login_required

from ..errors import ForbiddenError
from ..forms import RoleSelectionForm
from .resolver import ROLE_NONE, RoleResolver

roles_bp = Blueprint("roles", __name__)

SESSION_ROLE_KEY = "selected_role"
SESSION_ORGANIZATION_KEY = "selected_organization_id"


def current_role():
    """Resolve the logged-in identity, honouring a hint from the query string or the session."""
    selected_role = request.args.get("role") or session.get(SESSION_ROLE_KEY)
    selected_organization_id = request.args.get("organization_id", type=int)
    if selected_organization_id is None:
        selected_organization_id = session.get(SESSION_ORGANIZATION_KEY)
    return RoleResolver().resolve(current_user.id, selected_role, selected_organization_id)


@roles_bp.route("/me/role", methods=["GET"])
@login_required
def get_role():
    return jsonify(current_role().to_dict())


@roles_bp.route("/me/role", methods=["POST"])
@login_required
def select_role():
    form = RoleSelectionForm().validate_or_raise()
    resolved = RoleResolver().resolve(current_user.id, form.role.data, form.organization_id.data)
    if resolved.role == ROLE_NONE:
        raise ForbiddenError("You do not hold the selected role")
    session[SESSION_ROLE_KEY] = form.role.data
    # pin the organization that was actually chosen, not the one asked for
    session[SESSION_ORGANIZATION_KEY] = resolved.organization_id
    return jsonify(resolved.to_dict())


@roles_bp.route("/me/role", methods=["DELETE"])
@login_required
def clear_role():
    session.pop(SESSION_ROLE_KEY, None)
    session.pop(SESSION_ORGANIZATION_KEY, None)
    return jsonify(current_role().to_dict())


@roles_bp.route("/me/roles", methods=["GET"])
@login_required
def available_roles():
    return jsonify(RoleResolver().available_roles(current_user.id))
