from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required
from sqlalchemy.orm import selectinload
from marshmallow import Schema, fields, validate
import logging

from auth import require_current_user
from errors import ForbiddenError, NotFoundError
from models import db, Comment
from notifications import notify_comment_added
from task_rules import get_visible_task, is_admin
from users import user_summary
from validation import load_request

comments_bp = Blueprint('comments', __name__)
logger = logging.getLogger(__name__)


class CreateCommentSchema(Schema):
    """Comment input"""
    content = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=2000)
    )


def serialize_comment(comment):
    return {
        'id': comment.id,
        'content': comment.content,
        'taskId': comment.task_id,
        'authorId': comment.author_id,
        'author': user_summary(comment.author),
        'createdAt': comment.created_at.isoformat()
    }


@comments_bp.route('/tasks/<int:task_id>/comments', methods=['POST'])
@jwt_required()
def create_comment(task_id):
    """
    Comment on a visible task

    The task's creator and assignee are notified, except the author.
    """
    current_user = require_current_user()
    task = get_visible_task(task_id, current_user.id, current_user.role)
    result = load_request(CreateCommentSchema)

    comment = Comment(
        task_id=task.id,
        author_id=current_user.id,
        content=result['content']
    )

    try:
        db.session.add(comment)
        db.session.flush()

        notify_comment_added(task, comment, current_user)

        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error(f"Comment creation error on task {task_id}", exc_info=True)
        raise

    logger.info(f"Comment added to task {task_id} by user {current_user.email}")

    return jsonify(serialize_comment(comment)), 201


@comments_bp.route('/tasks/<int:task_id>/comments', methods=['GET'])
@jwt_required()
def get_task_comments(task_id):
    current_user = require_current_user()
    task = get_visible_task(task_id, current_user.id, current_user.role)

    comments = Comment.query.options(selectinload(Comment.author))\
        .filter_by(task_id=task.id)\
        .order_by(Comment.created_at.desc(), Comment.id.desc()).all()

    return jsonify([serialize_comment(c) for c in comments]), 200


@comments_bp.route('/comments/<int:comment_id>', methods=['DELETE'])
@jwt_required()
def delete_comment(comment_id):
    """Authors delete their own comments; admins any"""
    current_user = require_current_user()

    comment = db.session.get(Comment, comment_id)
    if comment is None:
        raise NotFoundError.for_resource('Comment', comment_id)

    if comment.author_id != current_user.id and not is_admin(current_user.role):
        raise ForbiddenError('You can only delete your own comments')

    try:
        db.session.delete(comment)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error(f"Comment deletion error for comment {comment_id}", exc_info=True)
        raise

    logger.info(f"Comment {comment_id} deleted by user {current_user.email}")

    return jsonify({'message': 'Comment deleted successfully'}), 200
