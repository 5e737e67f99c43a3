import enum
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow():
    """Naive UTC timestamp, the format every DateTime column stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================
# Enums
# ============================================

class Role(str, enum.Enum):
    ADMIN = 'ADMIN'
    USER = 'USER'


class TaskStatus(str, enum.Enum):
    TODO = 'TODO'
    IN_PROGRESS = 'IN_PROGRESS'
    DONE = 'DONE'


class TaskPriority(str, enum.Enum):
    LOW = 'LOW'
    MEDIUM = 'MEDIUM'
    HIGH = 'HIGH'


class NotificationType(str, enum.Enum):
    TASK_UPDATED = 'task_updated'
    TASK_DELETED = 'task_deleted'
    TASK_ASSIGNED = 'task_assigned'
    COMMENT_ADDED = 'comment_added'


# ============================================
# 1. User
# ============================================
class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=Role.USER.value)  # ADMIN, USER
    avatar = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    tasks_created = db.relationship('Task', foreign_keys='Task.creator_id', back_populates='creator', lazy=True)
    tasks_assigned = db.relationship('Task', foreign_keys='Task.assignee_id', back_populates='assignee', lazy=True)
    comments = db.relationship('Comment', back_populates='author', lazy=True)
    notifications = db.relationship('Notification', backref='user', lazy=True, cascade='all,delete-orphan')

    @property
    def is_admin(self):
        return self.role == Role.ADMIN

# ============================================
# 2. Category
# ============================================
class Category(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)
    color = db.Column(db.String(7), nullable=False, default='#6366f1')
    created_at = db.Column(db.DateTime, default=utcnow)

    # Deleting a category clears category_id on its tasks
    tasks = db.relationship('Task', back_populates='category', lazy=True)

# ============================================
# 3. Task
# ============================================
class Task(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=TaskStatus.TODO.value)  # TODO, IN_PROGRESS, DONE
    priority = db.Column(db.String(20), nullable=False, default=TaskPriority.MEDIUM.value)  # LOW, MEDIUM, HIGH

    # Foreign keys
    creator_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    assignee_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey('category.id', ondelete='SET NULL'), nullable=True)

    # Timestamps
    due_date = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    creator = db.relationship('User', foreign_keys=[creator_id], back_populates='tasks_created')
    assignee = db.relationship('User', foreign_keys=[assignee_id], back_populates='tasks_assigned')
    category = db.relationship('Category', back_populates='tasks')
    comments = db.relationship('Comment', back_populates='task', lazy=True,
                               cascade='all,delete-orphan', order_by='Comment.created_at.desc()')
    notifications = db.relationship('Notification', backref='task', lazy=True, cascade='all,delete-orphan')

    # Indexes
    __table_args__ = (
        db.Index('idx_task_creator', 'creator_id'),
        db.Index('idx_task_assignee_status', 'assignee_id', 'status'),
        db.Index('idx_task_due_date', 'due_date'),
        db.Index('idx_task_created_at', 'created_at'),
    )

# ============================================
# 4. Comment
# ============================================
class Comment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    content = db.Column(db.Text, nullable=False)
    task_id = db.Column(db.Integer, db.ForeignKey('task.id'), nullable=False)
    author_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    task = db.relationship('Task', back_populates='comments')
    author = db.relationship('User', back_populates='comments')

# ============================================
# 5. Notification
# ============================================
class Notification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    type = db.Column(db.String(50), nullable=False)  # see NotificationType
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text)
    is_read = db.Column(db.Boolean, default=False)
    task_id = db.Column(db.Integer, db.ForeignKey('task.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (
        db.Index('idx_notification_user_read', 'user_id', 'is_read'),
    )
