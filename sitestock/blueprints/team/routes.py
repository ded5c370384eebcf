from flask import jsonify

from sitestock.extensions import db
from sitestock.services import team as svc
from sitestock.services.permissions import PERM
from sitestock.services.policy import permission_required, current_member
from sitestock.blueprints.api import json_body, committed, arg_bool
from . import bp


@bp.get("/members")
@permission_required(PERM.TEAM_READ, PERM.TEAM_MEMBER_READ)
def list_members():
    rows = svc.list_members(db.session, current_member(), include_invited=not arg_bool("active_only"))
    return jsonify({"ok": True, "items": [m.to_dict() for m in rows]}), 200


@bp.get("/members/<int:member_id>")
@permission_required(PERM.TEAM_READ, PERM.TEAM_MEMBER_READ)
def get_member(member_id):
    m = svc.get_member(db.session, current_member().account_id, member_id)
    return jsonify({"ok": True, "member": m.to_dict()}), 200


@bp.post("/members/invite")
@permission_required(PERM.TEAM_INVITE)
def invite_member():
    data = json_body()
    out = committed(
        svc.invite_member,
        current_member(),
        email=data.get("email"),
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        phone=data.get("phone"),
        role=(data.get("role") or "worker").strip().lower(),
        send_email=data.get("send_email", True) not in (False, "0", "false"),
    )
    return jsonify({"ok": True, "member": out["member"].to_dict(), "invite_url": out["invite_url"]}), 201


@bp.post("/members/<int:member_id>/invite/rotate")
@permission_required(PERM.TEAM_INVITE)
def rotate_invite(member_id):
    data = json_body()
    out = committed(
        svc.rotate_invite_token,
        current_member(),
        member_id,
        send_email=data.get("send_email") in (True, "1", "true"),
    )
    return jsonify({"ok": True, "member": out["member"].to_dict(), "invite_url": out["invite_url"]}), 200


@bp.post("/members/<int:member_id>/role")
@permission_required(PERM.TEAM_MANAGE_ROLES)
def set_role(member_id):
    data = json_body()
    m = committed(svc.set_member_role, current_member(), member_id, (data.get("role") or "").strip().lower())
    return jsonify({"ok": True, "member": m.to_dict()}), 200


@bp.patch("/members/<int:member_id>")
@permission_required(PERM.TEAM_MANAGE_ROLES, PERM.TEAM_MANAGE_CREWS)
def update_member(member_id):
    m = committed(svc.update_member, current_member(), member_id, json_body())
    return jsonify({"ok": True, "member": m.to_dict()}), 200


@bp.delete("/members/<int:member_id>")
@permission_required(PERM.TEAM_REMOVE)
def delete_member(member_id):
    m = committed(svc.delete_team_member, current_member(), member_id)
    return jsonify({"ok": True, "id": m.id}), 200


# ---- Crews ----------------------------------------------------------------
@bp.get("/crews")
@permission_required(PERM.CREWS_READ)
def list_crews():
    return jsonify({"ok": True, "items": svc.list_crews(db.session, current_member())}), 200


@bp.get("/crews/<int:crew_id>")
@permission_required(PERM.CREWS_READ)
def get_crew(crew_id):
    return jsonify({"ok": True, "crew": svc.crew_detail(db.session, current_member(), crew_id)}), 200


@bp.post("/crews")
@permission_required(PERM.CREWS_CREATE)
def create_crew():
    data = json_body()
    crew = committed(
        svc.create_crew, current_member(), name=data.get("name"), leader_member_id=data.get("leader_member_id")
    )
    return jsonify({"ok": True, "crew": crew.to_dict()}), 201


@bp.patch("/crews/<int:crew_id>")
@permission_required(PERM.CREWS_UPDATE)
def rename_crew(crew_id):
    data = json_body()
    crew = committed(svc.rename_crew, current_member(), crew_id, name=data.get("name"))
    return jsonify({"ok": True, "crew": crew.to_dict()}), 200


@bp.post("/crews/<int:crew_id>/members")
@permission_required(PERM.CREWS_ASSIGN)
def add_crew_member(crew_id):
    data = json_body()
    m = committed(svc.assign_member_to_crew, current_member(), data.get("member_id"), crew_id)
    return jsonify({"ok": True, "member": m.to_dict()}), 200


@bp.post("/crews/<int:crew_id>/leader")
@permission_required(PERM.CREWS_CHANGE_LEADER)
def change_leader(crew_id):
    data = json_body()
    crew = committed(svc.change_crew_leader, current_member(), crew_id, data.get("member_id"))
    return jsonify({"ok": True, "crew": crew.to_dict()}), 200


@bp.delete("/crews/<int:crew_id>")
@permission_required(PERM.CREWS_DELETE)
def delete_crew(crew_id):
    crew = committed(svc.delete_crew, current_member(), crew_id)
    return jsonify({"ok": True, "id": crew.id}), 200
