from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required, get_jwt_identity
import logging

from errors import NotFoundError
from models import db, Notification, NotificationType

notifications_bp = Blueprint('notifications', __name__)
logger = logging.getLogger(__name__)


def current_user_id():
    return int(get_jwt_identity())


def serialize_notification(n):
    return {
        'id': n.id,
        'type': n.type,
        'title': n.title,
        'message': n.message,
        'taskId': n.task_id,
        'isRead': n.is_read,
        'createdAt': n.created_at.isoformat()
    }


# ============================================
# 1. Creating notifications (used by tasks and comments)
# ============================================

def notify_users(user_ids, notification_type, title, message, task_id=None, exclude_user_id=None):
    """
    Queue one notification per recipient

    Recipients are de-duplicated and the actor is skipped. Nothing is
    committed here; the caller's transaction owns the rows.
    """
    notifications = []
    seen = set()

    for user_id in user_ids:
        if user_id is None or user_id == exclude_user_id or user_id in seen:
            continue
        seen.add(user_id)

        notification = Notification(
            user_id=user_id,
            type=notification_type.value,
            title=title,
            message=message,
            task_id=task_id
        )
        notifications.append(notification)
        db.session.add(notification)

    return notifications


def notify_task_assigned(task, assignee_id, actor):
    return notify_users(
        [assignee_id],
        NotificationType.TASK_ASSIGNED,
        'Task Assigned',
        f'{actor.name} assigned you to "{task.title}"',
        task_id=task.id,
        exclude_user_id=actor.id
    )


def notify_task_updated(task, actor):
    return notify_users(
        [task.creator_id, task.assignee_id],
        NotificationType.TASK_UPDATED,
        'Task Updated',
        f'{actor.name} updated "{task.title}"',
        task_id=task.id,
        exclude_user_id=actor.id
    )


def notify_task_deleted(task, actor):
    # No task_id: the task row is about to go away
    return notify_users(
        [task.creator_id, task.assignee_id],
        NotificationType.TASK_DELETED,
        'Task Deleted',
        f'{actor.name} deleted "{task.title}"',
        exclude_user_id=actor.id
    )


def notify_comment_added(task, comment, actor):
    return notify_users(
        [task.creator_id, task.assignee_id],
        NotificationType.COMMENT_ADDED,
        'New Comment',
        f'{actor.name} commented on "{task.title}"',
        task_id=task.id,
        exclude_user_id=comment.author_id
    )


# ============================================
# 2. Inbox
# ============================================

@notifications_bp.route('/notifications', methods=['GET'])
@jwt_required()
def get_notifications():
    """Current user's notifications, newest first"""
    user_id = current_user_id()

    unread_only = request.args.get('unreadOnly', 'false').lower() in ('1', 'true', 'yes')
    notification_type = request.args.get('type')

    query = Notification.query.filter_by(user_id=user_id)

    if unread_only:
        query = query.filter_by(is_read=False)

    if notification_type:
        query = query.filter_by(type=notification_type)

    notifications = query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()

    return jsonify({
        'notifications': [serialize_notification(n) for n in notifications],
        'total': len(notifications),
        'unreadCount': Notification.query.filter_by(user_id=user_id, is_read=False).count()
    }), 200


def get_own_notification(notification_id, user_id):
    notification = Notification.query.filter_by(
        id=notification_id,
        user_id=user_id
    ).first()

    if not notification:
        raise NotFoundError.for_resource('Notification', notification_id)
    return notification


@notifications_bp.route('/notifications/<int:notification_id>/read', methods=['PATCH'])
@jwt_required()
def mark_notification_read(notification_id):
    notification = get_own_notification(notification_id, current_user_id())
    notification.is_read = True

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return jsonify({'message': 'Notification marked as read'}), 200


@notifications_bp.route('/notifications/read-all', methods=['PATCH'])
@jwt_required()
def mark_all_notifications_read():
    user_id = current_user_id()

    try:
        updated = Notification.query.filter_by(user_id=user_id, is_read=False)\
            .update({'is_read': True})
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return jsonify({
        'message': 'All notifications marked as read',
        'updated': updated
    }), 200


@notifications_bp.route('/notifications/<int:notification_id>', methods=['DELETE'])
@jwt_required()
def delete_notification(notification_id):
    notification = get_own_notification(notification_id, current_user_id())

    try:
        db.session.delete(notification)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return jsonify({'message': 'Notification deleted'}), 200


@notifications_bp.route('/notifications/clear', methods=['DELETE'])
@jwt_required()
def clear_notifications():
    """Delete every read notification of the current user"""
    user_id = current_user_id()

    notifications = Notification.query.filter_by(user_id=user_id, is_read=True).all()

    try:
        for notification in notifications:
            db.session.delete(notification)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Cleared {len(notifications)} notifications for user {user_id}")

    return jsonify({
        'message': f'Cleared {len(notifications)} read notifications'
    }), 200
