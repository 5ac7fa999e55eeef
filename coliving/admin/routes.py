"""Admin routes for the application."""

from flask import current_app, g, jsonify

from coliving.auth.decorators import login_required
from coliving.core.store import get_store
from coliving.utils import validate_form

from . import bp
from .forms import GroupPropertyForm, GroupSettingsForm
from .services import SettingsService


@bp.route("/settings/groups", methods=["GET"])
@login_required(admin_required=True)
def group_settings():
    """Return the defaults applied to newly created groups."""
    settings = SettingsService(get_store()).get_group_settings()
    return jsonify({"settings": settings.to_dict()})


@bp.route("/settings/groups", methods=["PUT"])
@login_required(admin_required=True)
def update_group_settings():
    """Change the defaults applied to newly created groups."""
    form = validate_form(GroupSettingsForm())
    settings = SettingsService(get_store()).update_group_settings(
        timeout_hours=form.timeout_hours.data,
        threshold_percent=form.threshold_percent.data,
    )
    current_app.logger.info(
        f"Admin {g.user['uid']} updated group settings to {settings.to_dict()}"
    )
    return jsonify({"status": "success", "settings": settings.to_dict()})


@bp.route("/group_properties", methods=["GET"])
@login_required(admin_required=True)
def group_properties():
    properties = SettingsService(get_store()).get_group_properties()
    return jsonify({"properties": properties})


@bp.route("/group_properties", methods=["POST"])
@login_required(admin_required=True)
def add_group_property():
    form = validate_form(GroupPropertyForm())
    name = SettingsService(get_store()).add_group_property(form.name.data)
    return jsonify({"status": "success", "property": name}), 201


@bp.route("/group_properties/<string:name>", methods=["DELETE"])
@login_required(admin_required=True)
def remove_group_property(name):
    SettingsService(get_store()).remove_group_property(name)
    return jsonify({"status": "success"})
