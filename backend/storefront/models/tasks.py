from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .related import RelatedEntityMixin


TASK_PENDING = "Pending"
TASK_IN_PROGRESS = "InProgress"
TASK_COMPLETED = "Completed"
TASK_CANCELLED = "Cancelled"

VALID_TASK_STATUSES = (TASK_PENDING, TASK_IN_PROGRESS, TASK_COMPLETED, TASK_CANCELLED)
OPEN_TASK_STATUSES = (TASK_PENDING, TASK_IN_PROGRESS)

PRIORITY_LOW = "Low"
PRIORITY_MEDIUM = "Medium"
PRIORITY_HIGH = "High"
PRIORITY_URGENT = "Urgent"

# Highest first
VALID_TASK_PRIORITIES = (PRIORITY_URGENT, PRIORITY_HIGH, PRIORITY_MEDIUM, PRIORITY_LOW)

CATEGORY_COMMISSION_REVIEW = "CommissionReview"
CATEGORY_PAYMENT_REVIEW = "PaymentReview"
CATEGORY_ORDER_PROCESSING = "OrderProcessing"
CATEGORY_FULFILLMENT = "Fulfillment"
CATEGORY_WHOLESALE_REVIEW = "WholesaleReview"
CATEGORY_OTHER = "Other"

VALID_TASK_CATEGORIES = (
    CATEGORY_COMMISSION_REVIEW,
    CATEGORY_PAYMENT_REVIEW,
    CATEGORY_ORDER_PROCESSING,
    CATEGORY_FULFILLMENT,
    CATEGORY_WHOLESALE_REVIEW,
    CATEGORY_OTHER,
)


class Task(RelatedEntityMixin, db.Model):
    """
    Back-office work item.

    Created as a side effect of commission creation, pending manual payments
    and wholesale applications; closed when the related action completes.
    """
    __tablename__ = "tasks"
    __table_args__ = (
        db.Index("ix_tasks_related", "related_to", "related_id"),
        db.Index("ix_tasks_status_priority", "status", "priority"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(32), nullable=False, default=CATEGORY_OTHER)
    priority = db.Column(db.String(16), nullable=False, default=PRIORITY_MEDIUM)
    status = db.Column(db.String(16), nullable=False, default=TASK_PENDING)

    related_to = db.Column(db.String(32), nullable=True)
    related_id = db.Column(db.String(64), nullable=True)

    assigned_to_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    due_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_TASK_STATUSES

    def to_dict(self) -> dict:
        related = self.related
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "priority": self.priority,
            "status": self.status,
            "related": related.to_dict() if related else None,
            "assigned_to_user_id": self.assigned_to_user_id,
            "created_by_user_id": self.created_by_user_id,
            "completed_by_user_id": self.completed_by_user_id,
            "completed_at": to_utc_z(self.completed_at),
            "due_at": to_utc_z(self.due_at),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
