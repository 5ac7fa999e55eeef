"""Routes for the group blueprint."""

from flask import current_app, g, jsonify, request

from coliving.auth.decorators import login_required
from coliving.core.store import get_store, utcnow
from coliving.errors import ForbiddenError
from coliving.utils import json_list, validate_form

from . import bp
from .forms import (
    EditGroupForm,
    GroupForm,
    InviteForm,
    RequiredMembersForm,
    RespondForm,
    TransferAdminForm,
)
from .services import GroupServices
from .services.expiration import time_remaining


def _services():
    return GroupServices.build(get_store())


def _with_countdown(group):
    """Attach the seconds left before the group's deadline."""
    remaining = time_remaining(group, utcnow())
    group["secondsRemaining"] = (
        int(remaining.total_seconds()) if remaining is not None else None
    )
    return group


@bp.route("/", methods=["GET"])
@login_required
def view_groups():
    """List every group, or only the caller's with ``?mine=1``."""
    repository = _services().repository
    if request.args.get("mine"):
        groups = repository.list_user_groups(g.user["uid"])
    else:
        groups = repository.list_groups()
    return jsonify({"groups": [_with_countdown(group) for group in groups]})


@bp.route("/", methods=["POST"])
@login_required
def create_group():
    """Create a group led by the caller."""
    form = validate_form(GroupForm())
    payload = request.get_json(silent=True) or {}
    group_id = _services().repository.create_group(
        name=form.name.data,
        required_members=form.required_members.data,
        creator_id=g.user["uid"],
        description=form.description.data or "",
        properties=json_list(payload, "properties"),
        purpose=form.purpose.data or "",
        apartment_ref=form.apartment_ref.data or None,
    )
    current_app.logger.info(f"User {g.user['uid']} created group {group_id}")
    return jsonify({"status": "success", "groupId": group_id}), 201


@bp.route("/<string:group_id>", methods=["GET"])
@login_required
def view_group(group_id):
    """Return one group.

    The group is evaluated for expiration first, so a client looking at an
    overdue group sees it expired even when no monitor is running.
    """
    services = _services()
    group = services.repository.get_group(group_id)
    if services.expiration.check_group(group):
        group = services.repository.get_group(group_id)
    return jsonify({"group": _with_countdown(group)})


@bp.route("/<string:group_id>", methods=["PATCH"])
@login_required
def edit_group(group_id):
    """Edit a group's descriptive fields (admin only)."""
    form = validate_form(EditGroupForm())
    payload = request.get_json(silent=True) or {}
    _services().repository.update_details(
        group_id,
        g.user["uid"],
        name=form.name.data if "name" in payload else None,
        description=form.description.data if "description" in payload else None,
        purpose=form.purpose.data if "purpose" in payload else None,
        properties=json_list(payload, "properties"),
        apartment_ref=(
            form.apartment_ref.data or "" if "apartment_ref" in payload else None
        ),
    )
    return jsonify({"status": "success"})


@bp.route("/<string:group_id>", methods=["DELETE"])
@login_required
def delete_group(group_id):
    """Delete a group (admin only)."""
    _services().repository.delete_group(group_id, g.user["uid"])
    return jsonify({"status": "success"})


@bp.route("/<string:group_id>/required_members", methods=["PUT"])
@login_required
def update_required_members(group_id):
    form = validate_form(RequiredMembersForm())
    _services().repository.update_required_members(
        group_id, form.required_members.data, g.user["uid"]
    )
    return jsonify({"status": "success"})


@bp.route("/<string:group_id>/admin", methods=["PUT"])
@login_required
def transfer_admin(group_id):
    form = validate_form(TransferAdminForm())
    _services().repository.update_admin(
        group_id, form.new_admin_id.data, g.user["uid"]
    )
    return jsonify({"status": "success"})


@bp.route("/<string:group_id>/complete", methods=["POST"])
@login_required
def complete_group(group_id):
    """Mark the group as formed and release its members (admin only)."""
    _services().repository.complete_group(group_id, g.user["uid"])
    return jsonify({"status": "success"})


@bp.route("/<string:group_id>/join", methods=["POST"])
@login_required
def join_group(group_id):
    """Join a group directly, e.g. from a shared link."""
    group = _services().membership.join_directly(group_id, g.user["uid"])
    return jsonify({"status": "success", "group": _with_countdown(group)})


@bp.route("/<string:group_id>/leave", methods=["POST"])
@login_required
def leave_group(group_id):
    uid = g.user["uid"]
    _services().membership.remove_member(group_id, uid, uid)
    return jsonify({"status": "success"})


@bp.route("/<string:group_id>/members/<string:user_id>", methods=["DELETE"])
@login_required
def remove_member(group_id, user_id):
    """Remove a member from the group."""
    group = _services().membership.remove_member(group_id, user_id, g.user["uid"])
    return jsonify({"status": "success", "group": _with_countdown(group)})


# --- Invitations -------------------------------------------------------------


@bp.route("/<string:group_id>/invitations", methods=["GET"])
@login_required
def list_group_invitations(group_id):
    services = _services()
    group = services.repository.get_group(group_id)
    if g.user["uid"] not in group.get("members", []):
        raise ForbiddenError("Members only.")
    return jsonify({"invitations": services.invitations.list_for_group(group_id)})


@bp.route("/<string:group_id>/invitations", methods=["POST"])
@login_required
def invite(group_id):
    """Invite another user to the group."""
    form = validate_form(InviteForm())
    invitation_id = _services().invitations.invite(
        group_id,
        g.user["uid"],
        form.recipient_id.data,
        invite_type=form.type.data,
    )
    return jsonify({"status": "success", "invitationId": invitation_id}), 201


@bp.route("/<string:group_id>/invitations/<string:recipient_id>", methods=["DELETE"])
@login_required
def cancel_invitation(group_id, recipient_id):
    """Withdraw a pending invitation (group admin only)."""
    services = _services()
    group = services.repository.get_group(group_id)
    if group.get("adminId") != g.user["uid"]:
        raise ForbiddenError("Only the group admin can do that.")
    services.invitations.cancel_invitation(group_id, recipient_id)
    return jsonify({"status": "success"})


@bp.route("/invitations", methods=["GET"])
@login_required
def my_invitations():
    """List the caller's pending invitations."""
    return jsonify({"invitations": _services().invitations.list_for_user(g.user["uid"])})


@bp.route("/invitations/<string:invitation_id>/respond", methods=["POST"])
@login_required
def respond_to_invitation(invitation_id):
    """Accept or reject an invitation addressed to the caller."""
    form = validate_form(RespondForm())
    _services().invitations.respond_to_invitation(
        invitation_id, g.user["uid"], form.decision.data
    )
    return jsonify({"status": "success", "decision": form.decision.data})
