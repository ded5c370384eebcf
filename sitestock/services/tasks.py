from __future__ import annotations

from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from sitestock.models.crew import Crew
from sitestock.models.task import ProjectPlace, Task, TASK_STATUSES, STATUS_DONE
from sitestock.models.team_member import TeamMember
from sitestock.observability import log_event
from sitestock.utils.helpers import utcnow
from sitestock.utils.validators import clean_str
from .common import ServiceError, get_live, INVALID, FORBIDDEN, NOT_FOUND, CONFLICT
from .permissions import PERM, ensure, can


# ---- Places ---------------------------------------------------------------
def get_place(session: Session, account_id: int, place_id) -> ProjectPlace:
    return get_live(session, ProjectPlace, place_id, account_id, what="Place")


def list_places(session: Session, account_id: int, *, parent_id=None, roots_only: bool = False) -> List[ProjectPlace]:
    q = session.query(ProjectPlace).filter(
        ProjectPlace.account_id == account_id, ProjectPlace.deleted_at.is_(None)
    )
    if roots_only:
        q = q.filter(ProjectPlace.parent_id.is_(None))
    elif parent_id is not None:
        q = q.filter(ProjectPlace.parent_id == parent_id)
    return q.order_by(func.lower(ProjectPlace.name)).all()


def breadcrumb(session: Session, place: ProjectPlace) -> List[ProjectPlace]:
    """Root-first chain of places ending at `place`."""
    chain = [place]
    seen = {place.id}
    cur = place
    while cur.parent_id is not None:
        parent = session.get(ProjectPlace, cur.parent_id)
        if parent is None or parent.id in seen:
            break
        chain.append(parent)
        seen.add(parent.id)
        cur = parent
    return list(reversed(chain))


def _check_parent(session: Session, account_id: int, place: Optional[ProjectPlace], parent_id) -> Optional[int]:
    if parent_id in (None, ""):
        return None
    parent = get_place(session, account_id, parent_id)
    if place is not None:
        # walking up from the new parent must never reach the place itself
        for node in breadcrumb(session, parent):
            if node.id == place.id:
                raise ServiceError("A place cannot be nested inside itself.", INVALID, field="parent_id")
    return parent.id


def create_place(session: Session, actor: TeamMember, *, name: str, parent_id=None, description: str = None) -> ProjectPlace:
    ensure(actor, PERM.PROJECT_MANAGE, PERM.TASKS_ASSIGN)
    name = clean_str(name, 255)
    if not name:
        raise ServiceError("Name is required.", INVALID, field="name")
    place = ProjectPlace(
        account_id=actor.account_id,
        name=name,
        parent_id=_check_parent(session, actor.account_id, None, parent_id),
        description=clean_str(description, 4000),
    )
    session.add(place)
    session.flush()
    return place


def update_place(session: Session, actor: TeamMember, place_id, data: Dict[str, Any]) -> ProjectPlace:
    ensure(actor, PERM.PROJECT_MANAGE, PERM.TASKS_ASSIGN)
    place = get_place(session, actor.account_id, place_id)
    if "name" in data:
        name = clean_str(data.get("name"), 255)
        if not name:
            raise ServiceError("Name cannot be blank.", INVALID, field="name")
        place.name = name
    if "description" in data:
        place.description = clean_str(data.get("description"), 4000)
    if "parent_id" in data:
        place.parent_id = _check_parent(session, actor.account_id, place, data.get("parent_id"))
    session.flush()
    return place


def delete_place(session: Session, actor: TeamMember, place_id) -> ProjectPlace:
    ensure(actor, PERM.PROJECT_MANAGE)
    place = get_place(session, actor.account_id, place_id)
    open_tasks = (
        session.query(func.count(Task.id))
        .filter(Task.place_id == place.id, Task.deleted_at.is_(None))
        .scalar()
    )
    children = (
        session.query(func.count(ProjectPlace.id))
        .filter(ProjectPlace.parent_id == place.id, ProjectPlace.deleted_at.is_(None))
        .scalar()
    )
    if open_tasks or children:
        raise ServiceError("Place still has tasks or sub-places.", CONFLICT)
    place.deleted_at = utcnow()
    session.flush()
    return place


# ---- Tasks ----------------------------------------------------------------
def get_task(session: Session, account_id: int, task_id) -> Task:
    return get_live(session, Task, task_id, account_id, what="Task")


def _check_assignees(session: Session, account_id: int, crew_id, member_id, errors: Dict[str, str]):
    crew = member = None
    if crew_id not in (None, ""):
        try:
            crew = get_live(session, Crew, crew_id, account_id, what="Crew")
        except ServiceError:
            errors["assigned_crew_id"] = "Unknown crew."
    if member_id not in (None, ""):
        try:
            member = get_live(session, TeamMember, member_id, account_id, what="Member")
        except ServiceError:
            errors["assigned_member_id"] = "Unknown team member."
    return crew, member


def _is_own(actor: TeamMember, task: Task) -> bool:
    if task.assigned_member_id == actor.id:
        return True
    return actor.crew_id is not None and task.assigned_crew_id == actor.crew_id


def create_task(session: Session, actor: TeamMember, data: Dict[str, Any]) -> Task:
    ensure(actor, PERM.TASKS_ASSIGN)
    errors: Dict[str, str] = {}
    title = clean_str(data.get("title"), 255)
    if not title:
        errors["title"] = "Title is required."
    place = None
    if data.get("place_id") in (None, ""):
        errors["place_id"] = "Place is required."
    else:
        try:
            place = get_place(session, actor.account_id, data.get("place_id"))
        except ServiceError:
            errors["place_id"] = "Unknown place."
    crew, member = _check_assignees(
        session, actor.account_id, data.get("assigned_crew_id"), data.get("assigned_member_id"), errors
    )
    if errors:
        raise ServiceError("Please correct the highlighted fields.", INVALID, errors=errors)

    task = Task(
        account_id=actor.account_id,
        place_id=place.id,
        title=title,
        description=clean_str(data.get("description"), 4000),
        assigned_crew_id=crew.id if crew else None,
        assigned_member_id=member.id if member else None,
        created_by=actor.id,
        photos=[],
    )
    session.add(task)
    session.flush()
    return task


def _set_status(task: Task, status) -> None:
    if status not in TASK_STATUSES:
        raise ServiceError("Status must be todo, in_progress or done.", INVALID, field="status")
    if status == STATUS_DONE and task.status != STATUS_DONE:
        task.completed_at = utcnow()
    elif status != STATUS_DONE:
        task.completed_at = None
    task.status = status


def update_task(session: Session, actor: TeamMember, task_id, data: Dict[str, Any]) -> Task:
    snap = ensure(actor, PERM.TASKS_UPDATE_ALL, PERM.TASKS_UPDATE_OWN)
    task = get_task(session, actor.account_id, task_id)
    full = can(snap, PERM.TASKS_UPDATE_ALL)
    if not full:
        if not _is_own(actor, task):
            raise ServiceError("You can only update tasks assigned to you or your crew.", FORBIDDEN)
        extra = set(data) - {"status"}
        if extra:
            raise ServiceError("You can only change the status of your tasks.", FORBIDDEN)

    errors: Dict[str, str] = {}
    if "title" in data:
        title = clean_str(data.get("title"), 255)
        if not title:
            errors["title"] = "Title cannot be blank."
        else:
            task.title = title
    if "description" in data:
        task.description = clean_str(data.get("description"), 4000)
    if "place_id" in data:
        try:
            task.place_id = get_place(session, actor.account_id, data.get("place_id")).id
        except ServiceError:
            errors["place_id"] = "Unknown place."
    if errors:
        raise ServiceError("Please correct the highlighted fields.", INVALID, errors=errors)
    if "status" in data:
        _set_status(task, data.get("status"))
    session.flush()
    return task


def assign_task(session: Session, actor: TeamMember, task_id, *, crew_id=None, member_id=None) -> Task:
    ensure(actor, PERM.TASKS_ASSIGN)
    task = get_task(session, actor.account_id, task_id)
    errors: Dict[str, str] = {}
    crew, member = _check_assignees(session, actor.account_id, crew_id, member_id, errors)
    if errors:
        raise ServiceError("Please correct the highlighted fields.", INVALID, errors=errors)
    task.assigned_crew_id = crew.id if crew else None
    task.assigned_member_id = member.id if member else None
    session.flush()
    return task


def delete_task(session: Session, actor: TeamMember, task_id) -> Task:
    ensure(actor, PERM.TASKS_ASSIGN)
    task = get_task(session, actor.account_id, task_id)
    task.deleted_at = utcnow()
    session.flush()
    return task


def list_tasks(
    session: Session,
    actor: TeamMember,
    *,
    status: Optional[str] = None,
    place_id: Optional[int] = None,
    mine: bool = False,
) -> List[Task]:
    snap = ensure(actor, PERM.TASKS_READ_ALL, PERM.TASKS_READ_OWN)
    q = session.query(Task).filter(Task.account_id == actor.account_id, Task.deleted_at.is_(None))
    if mine or not can(snap, PERM.TASKS_READ_ALL):
        own = [Task.assigned_member_id == actor.id]
        if actor.crew_id is not None:
            own.append(Task.assigned_crew_id == actor.crew_id)
        q = q.filter(or_(*own))
    if status:
        q = q.filter(Task.status == status)
    if place_id:
        q = q.filter(Task.place_id == place_id)
    return q.order_by(Task.created_at.desc(), Task.id.desc()).all()


def read_task(session: Session, actor: TeamMember, task_id) -> Task:
    snap = ensure(actor, PERM.TASKS_READ_ALL, PERM.TASKS_READ_OWN)
    task = get_task(session, actor.account_id, task_id)
    if not can(snap, PERM.TASKS_READ_ALL) and not _is_own(actor, task):
        raise ServiceError(f"Task {task.id} not found.", NOT_FOUND)
    return task


def upload_task_photos(session: Session, actor: TeamMember, task_id, files) -> Task:
    from .storage import save_upload

    snap = ensure(actor, PERM.TASKS_UPLOAD_PHOTOS)
    task = get_task(session, actor.account_id, task_id)
    if not can(snap, PERM.TASKS_UPDATE_ALL) and not _is_own(actor, task):
        raise ServiceError("You can only add photos to your own tasks.", FORBIDDEN)
    files = [f for f in (files or []) if f is not None and getattr(f, "filename", "")]
    if not files:
        raise ServiceError("No files uploaded.", INVALID, field="files")
    limit = current_app.config.get("MAX_TASK_PHOTOS", 3)
    photos = list(task.photos or [])
    if len(photos) + len(files) > limit:
        raise ServiceError(f"A task can have at most {limit} photos.", INVALID, field="files")
    for f in files:
        photos.append(save_upload(f, account_id=actor.account_id, area="tasks", owner=str(task.id)))
    task.photos = photos
    session.flush()
    return task


def complete_task_from_daily_report(session: Session, report) -> Optional[Task]:
    """Mark the report's task done when the report says the work is finished."""
    if not report.is_completed or not report.task_id:
        return None
    task = session.get(Task, report.task_id)
    if task is None or task.account_id != report.account_id or task.deleted_at is not None:
        return None
    if task.status != STATUS_DONE:
        task.status = STATUS_DONE
        task.completed_at = utcnow()
        session.flush()
        log_event(
            current_app.logger, "task_completed_from_report",
            account_id=report.account_id, task_id=task.id, report_id=report.id,
        )
    return task
