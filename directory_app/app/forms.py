from __future__ import annotations
from flask_wtf import FlaskForm
from wtforms import IntegerField, PasswordField, SelectField, StringField
from wtforms.validators import DataRequired, Email, Length, Optional, Regexp

from .errors import ValidationFailedError


class JSONForm(FlaskForm):
    """Form bound to a JSON request body.

    Flask-WTF reads ``request.get_json()`` when the body is JSON. API clients
    authenticate with the session cookie and never receive a CSRF token.
    """

    class Meta:
        csrf = False

    def validate_or_raise(self) -> "JSONForm":
        if not self.validate():
            field, messages = next(iter(self.errors.items()))
            raise ValidationFailedError(f"{field}: {messages[0]}")
        return self


class InvitationForm(JSONForm):
    email = StringField("email", validators=[DataRequired(), Email(), Length(max=255)])
    first_name = StringField("first_name", validators=[DataRequired(), Length(max=120)])
    last_name = StringField("last_name", validators=[DataRequired(), Length(max=120)])
    organization_type = SelectField(
        "organization_type",
        choices=[("company", "company"), ("association", "association")],
        validators=[DataRequired()],
    )
    organization_id = IntegerField("organization_id", validators=[DataRequired()])
    role = StringField("role", validators=[Optional(), Length(max=20)], default="member")
    designation = StringField("designation", validators=[Optional(), Length(max=255)])
    department = StringField("department", validators=[Optional(), Length(max=255)])


class TokenForm(JSONForm):
    # 64 lowercase hex characters; anything else is rejected as invalid later
    token = StringField("token", validators=[DataRequired(), Length(max=128)])


class AcceptInvitationForm(TokenForm):
    password = PasswordField("password", validators=[DataRequired()])
    first_name = StringField("first_name", validators=[Optional(), Length(max=120)])
    last_name = StringField("last_name", validators=[Optional(), Length(max=120)])


class RevokeInvitationForm(JSONForm):
    reason = StringField("reason", validators=[Optional(), Length(max=500)])


class RoleSelectionForm(JSONForm):
    role = StringField(
        "role",
        validators=[
            DataRequired(),
            Regexp(r"^[a-z_-]+$", message="Unknown role"),
        ],
    )
    organization_id = IntegerField("organization_id", validators=[Optional()])


class LoginForm(JSONForm):
    email = StringField("email", validators=[DataRequired(), Length(max=255)])
    password = PasswordField("password", validators=[DataRequired()])
