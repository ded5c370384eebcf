from __future__ import annotations

import re
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sitestock.models.daily_report import (
    DailyReport,
    DailyReportItem,
    CREW_MODE_CREW,
    CREW_MODE_SOLO,
    CREW_MODE_AD_HOC,
    CREW_MODES,
)
from sitestock.models.material import Material
from sitestock.models.stock_movement import KIND_USAGE
from sitestock.models.task import Task
from sitestock.models.team_member import TeamMember, STATUS_ACTIVE
from sitestock.observability import log_event
from sitestock.utils.helpers import to_decimal, parse_date, utcnow
from sitestock.utils.validators import clean_str, is_valid_client_key
from .common import ServiceError, get_live, INVALID, FORBIDDEN, CONFLICT
from .materials import get_location
from .permissions import PERM, ensure
from .stock import apply_stock_delta
from .tasks import complete_task_from_daily_report, get_place

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_ALL = "all"

MAX_NOTES = 2000
_DRAFT_KEY_RE = re.compile(r"^[A-Za-z0-9_-]{6,64}$")


def get_daily_report(session: Session, account_id: int, report_id) -> DailyReport:
    return get_live(session, DailyReport, report_id, account_id, what="Daily report")


def _max_photos() -> int:
    return int(current_app.config.get("MAX_REPORT_PHOTOS", 3))


def _ids(raw) -> List[int]:
    out: List[int] = []
    for v in raw or []:
        try:
            out.append(int(v))
        except (TypeError, ValueError):
            raise ServiceError("Member ids must be integers.", INVALID, field="members")
    return out


def _clean_items(session: Session, account_id: int, location_id, raw_items, errors: Dict[str, str]) -> List[dict]:
    """Validated items; repeated materials are summed into one line."""
    if not isinstance(raw_items, list) or not raw_items:
        errors["items"] = "Add at least one material."
        return []
    merged: "OrderedDict[int, Decimal]" = OrderedDict()
    for idx, raw in enumerate(raw_items):
        raw = raw or {}
        qty = to_decimal(raw.get("qty_used", raw.get("qty")))
        if qty is None or qty <= 0:
            errors[f"items.{idx}.qty_used"] = "Quantity must be greater than zero."
        mat = None
        try:
            mat = session.get(Material, int(raw.get("material_id")))
        except (TypeError, ValueError):
            pass
        if mat is None or mat.account_id != account_id or mat.deleted_at is not None:
            errors[f"items.{idx}.material_id"] = "Unknown material."
            continue
        if location_id is not None and mat.inventory_location_id != location_id:
            errors[f"items.{idx}.material_id"] = "Material is stored in another location."
            continue
        if qty is not None and qty > 0:
            merged[mat.id] = merged.get(mat.id, Decimal("0")) + qty
    return [{"material_id": mid, "qty_used": q} for mid, q in merged.items()]


def _clean_images(raw, errors: Dict[str, str]) -> List[str]:
    if raw in (None, ""):
        return []
    if not isinstance(raw, list) or not all(isinstance(p, str) for p in raw):
        errors["images"] = "Images must be a list of stored file paths."
        return []
    images = [p for p in raw if p.strip()]
    if len(images) > _max_photos():
        errors["images"] = f"A report can have at most {_max_photos()} photos."
    return images


def _clean_notes(raw, errors: Dict[str, str]) -> Optional[str]:
    if raw in (None, ""):
        return None
    notes = str(raw).strip()
    if len(notes) > MAX_NOTES:
        errors["notes"] = f"Notes can be at most {MAX_NOTES} characters."
    return notes or None


def _live_active(session: Session, account_id: int, ids: List[int]) -> Dict[int, TeamMember]:
    if not ids:
        return {}
    rows = (
        session.query(TeamMember)
        .filter(
            TeamMember.account_id == account_id,
            TeamMember.id.in_(ids),
            TeamMember.deleted_at.is_(None),
            TeamMember.status == STATUS_ACTIVE,
        )
        .all()
    )
    return {m.id: m for m in rows}


def _resolve_crew(session: Session, reporter: TeamMember, report_date: date, payload: Dict[str, Any]) -> Dict[str, Any]:
    """crew_mode/crew_id/crew_name/group_key/members for a new report."""
    from .team import get_crew, crew_members

    mode = (payload.get("crew_mode") or CREW_MODE_SOLO).strip().lower()
    if mode not in CREW_MODES:
        raise ServiceError("Crew mode must be crew, solo or ad_hoc.", INVALID, field="crew_mode")
    main_ids = _ids(payload.get("main_crew_member_ids"))
    extra_ids = _ids(payload.get("extra_members"))

    if mode == CREW_MODE_SOLO:
        return {"crew_mode": mode, "crew_id": None, "crew_name": None, "group_key": None, "members": [reporter.id]}

    if mode == CREW_MODE_CREW:
        if reporter.crew_id is None:
            raise ServiceError("You are not assigned to a crew.", INVALID, field="crew_mode")
        crew = get_crew(session, reporter.account_id, reporter.crew_id)
        crew_ids = [m.id for m in crew_members(session, crew)]
        if payload.get("main_crew_member_ids") is None:
            main_ids = crew_ids
        stray = [i for i in main_ids if i not in crew_ids]
        if stray:
            raise ServiceError("Some selected people are not in your crew.", INVALID, field="main_crew_member_ids")
        members = [reporter.id] + [i for i in main_ids if i != reporter.id]
        live = _live_active(session, reporter.account_id, extra_ids)
        if len(live) != len(set(extra_ids)):
            raise ServiceError("Unknown extra team member.", INVALID, field="extra_members")
        members += [i for i in extra_ids if i not in members]
        return {"crew_mode": mode, "crew_id": crew.id, "crew_name": crew.name, "group_key": None, "members": members}

    if mode != CREW_MODE_AD_HOC:
        raise ServiceError("Crew mode must be crew, solo or ad_hoc.", INVALID, field="crew_mode")
    others = main_ids + extra_ids
    live = _live_active(session, reporter.account_id, others)
    if len(live) != len(set(others)):
        raise ServiceError("Unknown team member in the group.", INVALID, field="extra_members")
    members = [reporter.id]
    members += [i for i in others if i not in members]
    if len(set(members)) < 2:
        raise ServiceError("An ad-hoc group needs at least two people.", INVALID, field="extra_members")
    group_key = f"{report_date.isoformat()}::{','.join(sorted(str(i) for i in set(members)))}"
    return {"crew_mode": mode, "crew_id": None, "crew_name": None, "group_key": group_key, "members": members}


def _resolve_task(session: Session, reporter: TeamMember, crew_mode: str, task_id) -> Optional[Task]:
    if task_id in (None, ""):
        return None
    try:
        task = get_live(session, Task, task_id, reporter.account_id, what="Task")
    except ServiceError as e:
        raise ServiceError("Unknown task.", INVALID, field="task_id") from e
    if crew_mode == CREW_MODE_CREW:
        if reporter.crew_id is None or task.assigned_crew_id != reporter.crew_id:
            raise ServiceError("This task is not assigned to your crew.", INVALID, field="task_id")
    elif task.assigned_member_id != reporter.id:
        raise ServiceError("This task is not assigned to you.", INVALID, field="task_id")
    return task


def _find_by_client_key(session: Session, account_id: int, client_key: str) -> Optional[DailyReport]:
    return session.query(DailyReport).filter_by(account_id=account_id, client_key=client_key).one_or_none()


def create_daily_report(session: Session, actor: TeamMember, payload: Dict[str, Any]) -> DailyReport:
    """
    Record material usage for one day. The same client_key always yields the same
    report, so offline clients can retry safely.
    """
    ensure(actor, PERM.DAILY_REPORTS_CREATE)
    if actor.deleted_at is not None or actor.status != STATUS_ACTIVE:
        raise ServiceError("Only active team members can report usage.", FORBIDDEN)

    client_key = (payload.get("client_key") or "").strip()
    if not is_valid_client_key(client_key):
        raise ServiceError("client_key must be 8-120 characters.", INVALID, field="client_key")
    existing = _find_by_client_key(session, actor.account_id, client_key)
    if existing is not None:
        return existing

    errors: Dict[str, str] = {}
    report_date = parse_date(payload.get("date"))
    if report_date is None:
        errors["date"] = "Date must be YYYY-MM-DD or DD.MM.YYYY."
    location = None
    if payload.get("inventory_location_id") in (None, ""):
        errors["inventory_location_id"] = "Choose a location."
    else:
        try:
            location = get_location(session, actor.account_id, payload.get("inventory_location_id"))
        except ServiceError:
            errors["inventory_location_id"] = "Unknown location."
    items = _clean_items(
        session, actor.account_id, location.id if location else None, payload.get("items"), errors
    )
    images = _clean_images(payload.get("images"), errors)
    notes = _clean_notes(payload.get("notes"), errors)
    stage_id = None
    if payload.get("stage_id") not in (None, ""):
        try:
            stage_id = get_place(session, actor.account_id, payload.get("stage_id")).id
        except ServiceError:
            errors["stage_id"] = "Unknown stage."
    if errors:
        raise ServiceError("Please correct the highlighted fields.", INVALID, errors=errors)

    crew = _resolve_crew(session, actor, report_date, payload)
    task = _resolve_task(session, actor, crew["crew_mode"], payload.get("task_id"))
    is_completed = bool(payload.get("is_completed"))
    if is_completed and task is None:
        raise ServiceError("Pick the task you finished.", INVALID, field="is_completed")

    report = DailyReport(
        account_id=actor.account_id,
        client_key=client_key,
        date=report_date,
        person=actor.display_name,
        reporter_member_id=actor.id,
        inventory_location_id=location.id,
        place=(task.place.name if task is not None and task.place else clean_str(payload.get("place"), 255)),
        stage_id=stage_id,
        task_id=task.id if task else None,
        is_completed=is_completed,
        images=images,
        notes=notes,
        approved=False,
        **crew,
    )
    report.items = [DailyReportItem(**it) for it in items]
    session.add(report)
    try:
        session.flush()
    except IntegrityError as e:
        # concurrent retry with the same client_key
        session.rollback()
        existing = _find_by_client_key(session, actor.account_id, client_key)
        if existing is not None:
            return existing
        raise ServiceError("Report could not be saved.", CONFLICT) from e
    log_event(
        current_app.logger, "daily_report_created",
        account_id=actor.account_id, report_id=report.id, items=len(items), crew_mode=report.crew_mode,
    )
    return report


def update_daily_report(session: Session, actor: TeamMember, report_id, data: Dict[str, Any]) -> DailyReport:
    ensure(actor, PERM.DAILY_REPORTS_UPDATE_UNAPPROVED)
    report = get_daily_report(session, actor.account_id, report_id)
    if report.approved:
        raise ServiceError("Approved reports cannot be edited.", CONFLICT)

    errors: Dict[str, str] = {}
    items = None
    if "items" in data:
        items = _clean_items(session, actor.account_id, report.inventory_location_id, data.get("items"), errors)
    images = _clean_images(data.get("images"), errors) if "images" in data else None
    notes = _clean_notes(data.get("notes"), errors) if "notes" in data else None
    if errors:
        raise ServiceError("Please correct the highlighted fields.", INVALID, errors=errors)

    if "is_completed" in data:
        flag = bool(data.get("is_completed"))
        if flag and not report.task_id:
            raise ServiceError("Pick the task you finished.", INVALID, field="is_completed")
        report.is_completed = flag
    if items is not None:
        report.items = [DailyReportItem(**it) for it in items]
    if images is not None:
        report.images = images
    if "notes" in data:
        report.notes = notes
    session.flush()
    return report


def subtract_usage_and_update_stock(session: Session, report: DailyReport, actor_id: Optional[int] = None) -> None:
    """Take every item out of stock; any shortage aborts before anything changes."""
    pairs = []
    for item in report.items:
        mat = session.get(Material, item.material_id)
        if mat is None or mat.account_id != report.account_id:
            raise ServiceError(f"Material {item.material_id} no longer exists.", INVALID)
        qty = Decimal(item.qty_used)
        if qty > Decimal(mat.current_quantity or 0):
            raise ServiceError(
                f"Insufficient stock for '{mat.title}': {mat.current_quantity} {mat.unit} available, "
                f"{qty} {mat.unit} reported.",
                INVALID,
            )
        pairs.append((mat, qty))
    for mat, qty in pairs:
        apply_stock_delta(
            session, mat, -qty,
            kind=KIND_USAGE, occurred_on=report.date,
            source_type="daily_report", source_id=report.id, actor_id=actor_id,
        )


def approve_daily_report(session: Session, actor: TeamMember, report_id) -> DailyReport:
    ensure(actor, PERM.DAILY_REPORTS_APPROVE)
    report = get_daily_report(session, actor.account_id, report_id)
    if report.approved:
        return report
    if not report.items:
        raise ServiceError("Report has no items.", INVALID)

    subtract_usage_and_update_stock(session, report, actor_id=actor.id)
    report.approved = True
    report.approved_at = utcnow()
    report.approved_by = actor.id
    session.flush()
    complete_task_from_daily_report(session, report)
    log_event(
        current_app.logger, "daily_report_approved",
        account_id=actor.account_id, report_id=report.id, items=len(report.items),
    )
    return report


def delete_daily_report(session: Session, actor: TeamMember, report_id) -> int:
    ensure(actor, PERM.DAILY_REPORTS_DELETE_UNAPPROVED)
    report = get_daily_report(session, actor.account_id, report_id)
    if report.approved:
        raise ServiceError("Approved reports cannot be deleted.", CONFLICT)
    rid = report.id
    paths = list(report.images or [])
    session.delete(report)
    session.flush()
    _remove_files(paths)
    return rid


def list_daily_reports(
    session: Session,
    actor: TeamMember,
    *,
    status: str = STATUS_ALL,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    location_id: Optional[int] = None,
) -> List[DailyReport]:
    ensure(actor, PERM.DAILY_REPORTS_READ)
    q = session.query(DailyReport).filter(DailyReport.account_id == actor.account_id)
    if status == STATUS_PENDING:
        q = q.filter(DailyReport.approved.is_(False))
    elif status == STATUS_APPROVED:
        q = q.filter(DailyReport.approved.is_(True))
    if date_from:
        q = q.filter(DailyReport.date >= date_from)
    if date_to:
        q = q.filter(DailyReport.date <= date_to)
    if location_id:
        q = q.filter(DailyReport.inventory_location_id == location_id)
    return q.order_by(DailyReport.date.desc(), DailyReport.id.desc()).all()


def read_daily_report(session: Session, actor: TeamMember, report_id) -> DailyReport:
    ensure(actor, PERM.DAILY_REPORTS_READ)
    return get_daily_report(session, actor.account_id, report_id)


# ---- Photos ---------------------------------------------------------------
def _photo_owner(session: Session, actor: TeamMember, report_id, draft_key):
    if report_id not in (None, ""):
        report = get_daily_report(session, actor.account_id, report_id)
        if report.approved:
            raise ServiceError("Approved reports cannot be edited.", CONFLICT)
        return report, str(report.id)
    draft_key = (draft_key or "").strip()
    if not _DRAFT_KEY_RE.match(draft_key):
        raise ServiceError("draft_key must be 6-64 letters, digits, _ or -.", INVALID, field="draft_key")
    return None, f"draft-{draft_key}"


def upload_report_photos(
    session: Session,
    actor: TeamMember,
    files,
    *,
    report_id=None,
    draft_key: Optional[str] = None,
) -> List[str]:
    """
    Store photos for a report (or for a draft that has no report yet).
    Returns the stored paths; for saved reports they are also appended to `images`.
    """
    from .storage import count_uploads, save_upload

    ensure(actor, PERM.DAILY_REPORTS_PHOTOS_UPLOAD)
    report, owner = _photo_owner(session, actor, report_id, draft_key)
    files = [f for f in (files or []) if f is not None and getattr(f, "filename", "")]
    if not files:
        raise ServiceError("No files uploaded.", INVALID, field="files")
    if report is not None:
        have = len(report.images or [])
    else:
        have = count_uploads(actor.account_id, "daily-reports", owner)
    if have + len(files) > _max_photos():
        raise ServiceError(f"A report can have at most {_max_photos()} photos.", INVALID, field="files")

    paths = [save_upload(f, account_id=actor.account_id, area="daily-reports", owner=owner) for f in files]
    if report is not None:
        report.images = list(report.images or []) + paths
        session.flush()
    return paths


def delete_report_photo(session: Session, actor: TeamMember, path: str, *, report_id=None) -> bool:
    from .storage import delete_upload

    ensure(actor, PERM.DAILY_REPORTS_PHOTOS_DELETE)
    path = (path or "").strip()
    if not path.startswith(f"{actor.account_id}/daily-reports/"):
        raise ServiceError("Photo not found.", INVALID, field="path")
    if report_id not in (None, ""):
        report = get_daily_report(session, actor.account_id, report_id)
        if report.approved:
            raise ServiceError("Approved reports cannot be edited.", CONFLICT)
        images = list(report.images or [])
        if path not in images:
            raise ServiceError("Photo not found.", INVALID, field="path")
        report.images = [p for p in images if p != path]
        session.flush()
    return delete_upload(path)


def _remove_files(paths: List[str]) -> None:
    from .storage import delete_upload

    for p in paths:
        try:
            delete_upload(p)
        except (OSError, ServiceError) as e:
            current_app.logger.warning("photo cleanup failed path=%s err=%s", p, e)
