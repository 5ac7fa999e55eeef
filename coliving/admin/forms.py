"""Forms for the admin blueprint."""

from flask_wtf import FlaskForm
from wtforms import FloatField, IntegerField, StringField
from wtforms.validators import DataRequired, NumberRange, Optional


class GroupSettingsForm(FlaskForm):
    """Form for the global group defaults."""

    timeout_hours = FloatField(
        "Timeout (hours)",
        validators=[Optional(), NumberRange(min=0)],
    )
    threshold_percent = IntegerField(
        "Threshold (%)", validators=[Optional(), NumberRange(min=0, max=100)]
    )


class GroupPropertyForm(FlaskForm):
    """Form for adding a property to the catalogue."""

    name = StringField("Property", validators=[DataRequired()])
