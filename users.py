from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required

from auth import get_me, serialize_user, update_me
from errors import NotFoundError
from models import db, User

users_bp = Blueprint('users', __name__)

# Profile of the current user, same handlers as /auth/me
users_bp.add_url_rule('/me', view_func=get_me, methods=['GET'])
users_bp.add_url_rule('/me', view_func=update_me, methods=['PATCH'])


def user_summary(user):
    """Compact form embedded in tasks and comments"""
    if user is None:
        return None
    return {
        'id': user.id,
        'name': user.name,
        'email': user.email,
        'avatar': user.avatar
    }


@users_bp.route('', methods=['GET'])
@jwt_required()
def list_users():
    """Everyone, for assignee pickers"""
    users = User.query.order_by(User.name.asc()).all()
    return jsonify([serialize_user(u) for u in users]), 200


@users_bp.route('/<int:user_id>', methods=['GET'])
@jwt_required()
def get_user(user_id):
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError.for_resource('User', user_id)
    return jsonify(serialize_user(user)), 200
