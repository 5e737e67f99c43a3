from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required
from sqlalchemy import func
from sqlalchemy.orm import joinedload, selectinload
from marshmallow import Schema, fields, validate
from datetime import timezone
import logging

from auth import require_current_user
from comments import serialize_comment
from errors import NotFoundError, ValidationFailed
from models import db, Task, Comment, User, Category, TaskStatus, TaskPriority, utcnow
from notifications import notify_task_assigned, notify_task_updated, notify_task_deleted
from task_rules import (
    authorize_task_delete,
    authorize_task_update,
    get_visible_task,
    is_overdue,
    rank_tasks,
    task_filter_clause,
    task_stats,
)
from users import user_summary
from validation import load_query, load_request

tasks_bp = Blueprint('tasks', __name__)
logger = logging.getLogger(__name__)

STATUSES = [s.value for s in TaskStatus]
PRIORITIES = [p.value for p in TaskPriority]


# ============================================
# Input Validation Schemas
# ============================================

class CreateTaskSchema(Schema):
    """Task creation input"""
    title = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=200),
        error_messages={'required': 'Task title is required'}
    )
    description = fields.Str(allow_none=True, validate=validate.Length(max=2000))
    status = fields.Str(validate=validate.OneOf(STATUSES), load_default=TaskStatus.TODO.value)
    priority = fields.Str(validate=validate.OneOf(PRIORITIES), load_default=TaskPriority.MEDIUM.value)
    due_date = fields.DateTime(data_key='dueDate', allow_none=True)
    assignee_id = fields.Int(data_key='assigneeId', allow_none=True)
    category_id = fields.Int(data_key='categoryId', allow_none=True)


class UpdateTaskSchema(Schema):
    """
    Task update input

    Only keys present in the body are applied; an explicit null clears
    dueDate, assigneeId or categoryId. creatorId is not accepted.
    """
    title = fields.Str(validate=validate.Length(min=1, max=200))
    description = fields.Str(allow_none=True, validate=validate.Length(max=2000))
    status = fields.Str(validate=validate.OneOf(STATUSES))
    priority = fields.Str(validate=validate.OneOf(PRIORITIES))
    due_date = fields.DateTime(data_key='dueDate', allow_none=True)
    assignee_id = fields.Int(data_key='assigneeId', allow_none=True)
    category_id = fields.Int(data_key='categoryId', allow_none=True)


class FilterTasksSchema(Schema):
    """Query string filters for the task list"""
    status = fields.Str(validate=validate.OneOf(STATUSES))
    priority = fields.Str(validate=validate.OneOf(PRIORITIES))
    category_id = fields.Int(data_key='categoryId')
    assignee_id = fields.Int(data_key='assigneeId')
    search = fields.Str(validate=validate.Length(max=200))


# ============================================
# Helper Functions
# ============================================

UPDATABLE_FIELDS = ['title', 'description', 'status', 'priority', 'due_date', 'assignee_id', 'category_id']


def to_naive_utc(value):
    """Aware datetimes from the API become naive UTC like the stored columns"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def check_references(result):
    """Assignee and category ids in the payload must point at real rows"""
    errors = {}

    assignee_id = result.get('assignee_id')
    if assignee_id is not None and db.session.get(User, assignee_id) is None:
        errors['assigneeId'] = [f'User with ID {assignee_id} not found']

    category_id = result.get('category_id')
    if category_id is not None and db.session.get(Category, category_id) is None:
        errors['categoryId'] = [f'Category with ID {category_id} not found']

    if errors:
        raise ValidationFailed(errors)


def comment_counts(task_ids):
    if not task_ids:
        return {}
    rows = db.session.query(Comment.task_id, func.count(Comment.id))\
        .filter(Comment.task_id.in_(task_ids))\
        .group_by(Comment.task_id).all()
    return {task_id: count for task_id, count in rows}


def category_summary(category):
    if category is None:
        return None
    return {
        'id': category.id,
        'name': category.name,
        'color': category.color
    }


def serialize_task(task, now=None, comment_count=None):
    now = now or utcnow()
    data = {
        'id': task.id,
        'title': task.title,
        'description': task.description,
        'status': task.status,
        'priority': task.priority,
        'dueDate': task.due_date.isoformat() if task.due_date else None,
        'isOverdue': is_overdue(task, now),
        'creatorId': task.creator_id,
        'assigneeId': task.assignee_id,
        'categoryId': task.category_id,
        'creator': user_summary(task.creator),
        'assignee': user_summary(task.assignee),
        'category': category_summary(task.category),
        'createdAt': task.created_at.isoformat() if task.created_at else None,
        'updatedAt': task.updated_at.isoformat() if task.updated_at else None
    }
    if comment_count is not None:
        data['commentCount'] = comment_count
    return data


def load_task_for_response(task_id):
    return Task.query.options(
        joinedload(Task.creator),
        joinedload(Task.assignee),
        joinedload(Task.category)
    ).filter(Task.id == task_id).one()


# ============================================
# Create
# ============================================

@tasks_bp.route('', methods=['POST'])
@jwt_required()
def create_task():
    """
    Create a task owned by the current user

    The assignee, when someone else, gets a notification.
    """
    current_user = require_current_user()
    result = load_request(CreateTaskSchema)
    check_references(result)

    task = Task(
        title=result['title'],
        description=result.get('description'),
        status=result['status'],
        priority=result['priority'],
        due_date=to_naive_utc(result.get('due_date')),
        creator_id=current_user.id,
        assignee_id=result.get('assignee_id'),
        category_id=result.get('category_id')
    )

    try:
        db.session.add(task)
        db.session.flush()

        if task.assignee_id and task.assignee_id != current_user.id:
            notify_task_assigned(task, task.assignee_id, current_user)

        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error("Task creation error", exc_info=True)
        raise

    logger.info(f"Task created: {task.id} by user {current_user.email}")

    task = load_task_for_response(task.id)
    return jsonify(serialize_task(task, comment_count=0)), 201


# ============================================
# List and stats
# ============================================

@tasks_bp.route('', methods=['GET'])
@jwt_required()
def get_tasks():
    """
    Tasks the current user may see, filtered and ranked

    Filters: status, priority, categoryId, assigneeId, search. Results are
    ordered overdue first, then by priority and due date (see task_rules).
    """
    current_user = require_current_user()
    filters = load_query(FilterTasksSchema)

    query = Task.query.options(
        joinedload(Task.creator),
        joinedload(Task.assignee),
        joinedload(Task.category)
    ).filter(
        task_filter_clause(current_user.id, current_user.role, filters)
    ).order_by(Task.created_at.desc(), Task.id.desc())

    now = utcnow()
    tasks = rank_tasks(query.all(), now)
    counts = comment_counts([t.id for t in tasks])

    return jsonify({
        'tasks': [serialize_task(t, now, counts.get(t.id, 0)) for t in tasks],
        'total': len(tasks)
    }), 200


@tasks_bp.route('/stats', methods=['GET'])
@jwt_required()
def get_task_stats():
    current_user = require_current_user()
    return jsonify(task_stats(current_user.id, current_user.role)), 200


# ============================================
# Detail
# ============================================

@tasks_bp.route('/<int:task_id>', methods=['GET'])
@jwt_required()
def get_task(task_id):
    """Single task with its comments, newest first"""
    current_user = require_current_user()
    task = get_visible_task(task_id, current_user.id, current_user.role)

    comments = Comment.query.options(selectinload(Comment.author))\
        .filter_by(task_id=task.id)\
        .order_by(Comment.created_at.desc(), Comment.id.desc()).all()

    data = serialize_task(task, comment_count=len(comments))
    data['comments'] = [serialize_comment(c) for c in comments]
    return jsonify(data), 200


# ============================================
# Update
# ============================================

@tasks_bp.route('/<int:task_id>', methods=['PATCH'])
@jwt_required()
def update_task(task_id):
    """
    Update a task

    Creator, assignee or admin. Non-admins may only assign the task to
    themselves. Returns the task plus the list of changed fields.
    """
    current_user = require_current_user()

    task = db.session.get(Task, task_id)
    if task is None:
        raise NotFoundError.for_resource('Task', task_id)

    result = load_request(UpdateTaskSchema)
    authorize_task_update(task, current_user.id, current_user.role, result)
    check_references(result)

    if 'due_date' in result:
        result['due_date'] = to_naive_utc(result['due_date'])

    changes = {}
    old_assignee_id = task.assignee_id

    for field in UPDATABLE_FIELDS:
        if field in result:
            old_value = getattr(task, field)
            new_value = result[field]
            if old_value != new_value:
                changes[field] = {
                    'old': old_value.isoformat() if hasattr(old_value, 'isoformat') else old_value,
                    'new': new_value.isoformat() if hasattr(new_value, 'isoformat') else new_value
                }
                setattr(task, field, new_value)

    if not changes:
        return jsonify({
            'message': 'No changes to update',
            'task': serialize_task(load_task_for_response(task_id))
        }), 200

    try:
        db.session.flush()

        notify_task_updated(task, current_user)

        if 'assignee_id' in changes and task.assignee_id and task.assignee_id != old_assignee_id:
            notify_task_assigned(task, task.assignee_id, current_user)

        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error(f"Task update error for task {task_id}", exc_info=True)
        raise

    logger.info(f"Task {task_id} updated by user {current_user.email}: {sorted(changes)}")

    return jsonify({
        'message': 'Task updated successfully',
        'task': serialize_task(load_task_for_response(task_id)),
        'changes': changes
    }), 200


# ============================================
# Delete
# ============================================

@tasks_bp.route('/<int:task_id>', methods=['DELETE'])
@jwt_required()
def delete_task(task_id):
    """Creator or admin only; comments go with the task"""
    current_user = require_current_user()

    task = db.session.get(Task, task_id)
    if task is None:
        raise NotFoundError.for_resource('Task', task_id)

    authorize_task_delete(task, current_user.id, current_user.role)

    try:
        notify_task_deleted(task, current_user)
        db.session.delete(task)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error(f"Task deletion error for task {task_id}", exc_info=True)
        raise

    logger.info(f"Task deleted: {task_id} by user {current_user.email}")

    return jsonify({'message': 'Task deleted successfully'}), 200
