from __future__ import annotations
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from ..errors import ValidationFailedError
from ..forms import AcceptInvitationForm, InvitationForm, RevokeInvitationForm, TokenForm
from ..models import INVITATION_ACCEPTED, INVITATION_EXPIRED, INVITATION_PENDING, INVITATION_REVOKED
from .saga import AcceptanceSaga
from .service import InvitationService, parse_invitation_csv

invitations_bp = Blueprint("invitations", __name__)

LISTABLE_STATUSES = (INVITATION_PENDING, INVITATION_ACCEPTED, INVITATION_EXPIRED, INVITATION_REVOKED)


def _organization_args(source) -> tuple[str, int]:
    organization_type = (source.get("organization_type") or "").strip().lower()
    try:
        organization_id = int(source.get("organization_id"))
    except (TypeError, ValueError) as exc:
        raise ValidationFailedError("organization_id must be an integer") from exc
    if not organization_type:
        raise ValidationFailedError("organization_type is required")
    return organization_type, organization_id


@invitations_bp.route("/invitations", methods=["POST"])
@login_required
def issue_invitation():
    form = InvitationForm().validate_or_raise()
    result = InvitationService().issue(
        issuer_id=current_user.id,
        email=form.email.data,
        first_name=form.first_name.data,
        last_name=form.last_name.data,
        organization_id=form.organization_id.data,
        organization_type=form.organization_type.data,
        role=form.role.data or "member",
        designation=form.designation.data,
        department=form.department.data,
    )
    return jsonify(result.to_dict()), 201


@invitations_bp.route("/invitations/bulk", methods=["POST"])
@login_required
def issue_bulk():
    """Accepts either a multipart CSV upload (``file``) or a JSON body with ``rows``."""
    upload = request.files.get("file")
    if upload is not None:
        organization_type, organization_id = _organization_args(request.form)
        try:
            text = upload.read().decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ValidationFailedError("CSV file must be UTF-8 encoded") from exc
        rows = parse_invitation_csv(text)
    else:
        data = request.get_json(silent=True) or {}
        organization_type, organization_id = _organization_args(data)
        rows = data.get("rows")
        if not isinstance(rows, list):
            raise ValidationFailedError("rows must be a list")
        if not all(isinstance(row, dict) for row in rows):
            raise ValidationFailedError("each row must be an object")
    if not rows:
        raise ValidationFailedError("No invitation rows supplied")

    current_app.logger.info(
        "Bulk invitation of %d row(s) for %s %s by %s", len(rows), organization_type, organization_id, current_user.id
    )
    result = InvitationService().issue_bulk(current_user.id, organization_type, organization_id, rows)
    return jsonify(result.to_dict())


@invitations_bp.route("/invitations", methods=["GET"])
@login_required
def list_invitations():
    organization_type, organization_id = _organization_args(request.args)
    status = request.args.get("status")
    if status and status not in LISTABLE_STATUSES:
        raise ValidationFailedError(f"Unknown status: {status}")
    invitations = InvitationService().list_invitations(current_user.id, organization_type, organization_id, status)
    return jsonify({"invitations": [inv.to_dict() for inv in invitations]})


@invitations_bp.route("/invitations/<int:invitation_id>/resend", methods=["POST"])
@login_required
def resend_invitation(invitation_id: int):
    result = InvitationService().resend(invitation_id, current_user.id)
    return jsonify(result.to_dict())


@invitations_bp.route("/invitations/<int:invitation_id>/revoke", methods=["POST"])
@login_required
def revoke_invitation(invitation_id: int):
    form = RevokeInvitationForm()
    form.validate_or_raise()
    invitation = InvitationService().revoke(invitation_id, current_user.id, form.reason.data or None)
    return jsonify({"invitation": invitation.to_dict()})


@invitations_bp.route("/invitations/verify", methods=["POST"])
def verify_invitation():
    form = TokenForm().validate_or_raise()
    return jsonify({"invitation": InvitationService().verify(form.token.data.strip())})


@invitations_bp.route("/invitations/accept", methods=["POST"])
def accept_invitation():
    form = AcceptInvitationForm().validate_or_raise()
    result = AcceptanceSaga().accept(
        form.token.data.strip(),
        form.password.data,
        first_name=form.first_name.data,
        last_name=form.last_name.data,
    )
    return jsonify(result.to_dict()), 201
