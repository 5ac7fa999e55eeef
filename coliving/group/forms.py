"""Forms for the group blueprint."""

from flask_wtf import FlaskForm
from wtforms import IntegerField, SelectField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, NumberRange, Optional

from coliving.constants import MIN_REQUIRED_MEMBERS

from .models import INVITE_ACCEPTED, INVITE_LINK, INVITE_MANUAL, INVITE_REJECTED


class GroupForm(FlaskForm):
    """Form for creating a new group."""

    name = StringField("Group Name", validators=[DataRequired(), Length(max=100)])
    description = TextAreaField("Description", validators=[Optional()])
    purpose = StringField("Purpose", validators=[Optional()])
    apartment_ref = StringField("Apartment", validators=[Optional()])
    required_members = IntegerField(
        "Required Members",
        validators=[DataRequired(), NumberRange(min=MIN_REQUIRED_MEMBERS)],
    )


class EditGroupForm(FlaskForm):
    """Form for editing a group's descriptive fields."""

    name = StringField("Group Name", validators=[Optional(), Length(max=100)])
    description = TextAreaField("Description", validators=[Optional()])
    purpose = StringField("Purpose", validators=[Optional()])
    apartment_ref = StringField("Apartment", validators=[Optional()])


class RequiredMembersForm(FlaskForm):
    """Form for changing a group's target headcount."""

    required_members = IntegerField(
        "Required Members",
        validators=[DataRequired(), NumberRange(min=MIN_REQUIRED_MEMBERS)],
    )


class TransferAdminForm(FlaskForm):
    """Form for handing group leadership to another member."""

    new_admin_id = StringField("New Admin", validators=[DataRequired()])


class InviteForm(FlaskForm):
    """Form for inviting a user to a group."""

    recipient_id = StringField("Recipient", validators=[DataRequired()])
    type = SelectField(
        "Invitation Type",
        choices=[(INVITE_MANUAL, "Manual"), (INVITE_LINK, "Link")],
        default=INVITE_MANUAL,
    )


class RespondForm(FlaskForm):
    """Form for answering an invitation."""

    decision = SelectField(
        "Decision",
        choices=[(INVITE_ACCEPTED, "Accept"), (INVITE_REJECTED, "Reject")],
        validators=[DataRequired()],
    )
