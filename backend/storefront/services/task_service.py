# Overview: Service-layer operations for back-office tasks.

from __future__ import annotations

from sqlalchemy import case

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Task, EntityRef
from ..models.tasks import (
    VALID_TASK_STATUSES,
    VALID_TASK_PRIORITIES,
    VALID_TASK_CATEGORIES,
    OPEN_TASK_STATUSES,
    TASK_COMPLETED,
    TASK_CANCELLED,
    TASK_PENDING,
    PRIORITY_MEDIUM,
    PRIORITY_URGENT,
    PRIORITY_HIGH,
    PRIORITY_LOW,
    CATEGORY_OTHER,
)
from ..time_utils import utcnow
from ..validation import PageRequest, coerce_choice, paginate
from .transaction import unit_of_work


_PRIORITY_RANK = case(
    (Task.priority == PRIORITY_URGENT, 0),
    (Task.priority == PRIORITY_HIGH, 1),
    (Task.priority == PRIORITY_MEDIUM, 2),
    (Task.priority == PRIORITY_LOW, 3),
    else_=4,
)


def create_task(
    title: str,
    *,
    category: str = CATEGORY_OTHER,
    priority: str = PRIORITY_MEDIUM,
    description: str | None = None,
    related: EntityRef | None = None,
    assigned_to_user_id: int | None = None,
    created_by_user_id: int | None = None,
    uow=None,
) -> Task:
    if not title or not title.strip():
        raise ValidationError("title required")
    coerce_choice(category, "category", VALID_TASK_CATEGORIES)
    coerce_choice(priority, "priority", VALID_TASK_PRIORITIES)

    with unit_of_work(uow) as work:
        task = Task(
            title=title.strip(),
            description=description,
            category=category,
            priority=priority,
            status=TASK_PENDING,
            related=related,
            assigned_to_user_id=assigned_to_user_id,
            created_by_user_id=created_by_user_id,
        )
        work.add(task)
        work.flush()
    return task


def get_task(task_id: int) -> Task:
    task = db.session.get(Task, task_id)
    if not task:
        raise NotFoundError(f"Task {task_id} not found")
    return task


def list_tasks(
    page: PageRequest,
    *,
    status: str | None = None,
    category: str | None = None,
    priority: str | None = None,
    assigned_to_user_id: int | None = None,
    related: EntityRef | None = None,
) -> tuple[list[Task], dict]:
    """Most urgent first, newest first within a priority."""
    query = db.session.query(Task)
    if status:
        query = query.filter(Task.status == status)
    if category:
        query = query.filter(Task.category == category)
    if priority:
        query = query.filter(Task.priority == priority)
    if assigned_to_user_id is not None:
        query = query.filter(Task.assigned_to_user_id == assigned_to_user_id)
    if related is not None:
        related_to, related_id = related.to_columns()
        query = query.filter(Task.related_to == related_to, Task.related_id == related_id)

    query = query.order_by(_PRIORITY_RANK, Task.created_at.desc(), Task.id.desc())
    return paginate(query, page)


def update_task_status(task_id: int, status: str, user_id: int | None = None, notes: str | None = None, uow=None) -> Task:
    coerce_choice(status, "status", VALID_TASK_STATUSES)
    with unit_of_work(uow):
        task = get_task(task_id)
        task.status = status
        if notes:
            task.notes = f"{task.notes}\n{notes}" if task.notes else notes
        if status in (TASK_COMPLETED, TASK_CANCELLED):
            task.completed_at = utcnow()
            task.completed_by_user_id = user_id
        else:
            task.completed_at = None
            task.completed_by_user_id = None
    return task


def complete_task(task_id: int, user_id: int | None = None, notes: str | None = None) -> Task:
    return update_task_status(task_id, TASK_COMPLETED, user_id=user_id, notes=notes)


def close_tasks_for(
    related: EntityRef,
    *,
    category: str | None = None,
    status: str = TASK_COMPLETED,
    user_id: int | None = None,
    note: str | None = None,
    uow=None,
) -> int:
    """
    Close every open task about `related` (optionally one category only).

    Returns the number of tasks closed.
    """
    related_to, related_id = related.to_columns()
    with unit_of_work(uow):
        query = db.session.query(Task).filter(
            Task.related_to == related_to,
            Task.related_id == related_id,
            Task.status.in_(OPEN_TASK_STATUSES),
        )
        if category:
            query = query.filter(Task.category == category)
        tasks = query.all()
        now = utcnow()
        for task in tasks:
            task.status = status
            task.completed_at = now
            task.completed_by_user_id = user_id
            if note:
                task.notes = f"{task.notes}\n{note}" if task.notes else note
    return len(tasks)
