from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required
from sqlalchemy import and_, func
from sqlalchemy.orm import joinedload
from marshmallow import Schema, fields, validate
import logging

from auth import require_current_user
from errors import ConflictError, ForbiddenError, NotFoundError
from models import db, Category, Task
from task_rules import is_admin, visible_tasks_clause
from tasks import serialize_task
from validation import load_request

categories_bp = Blueprint('categories', __name__)
logger = logging.getLogger(__name__)

HEX_COLOR = validate.Regexp(
    r'^#[0-9A-Fa-f]{6}$',
    error='Color must be a valid hex color (e.g., #6366f1)'
)


# ============================================
# Input Validation Schemas
# ============================================

class CreateCategorySchema(Schema):
    name = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=50),
        error_messages={'required': 'Category name is required'}
    )
    color = fields.Str(validate=HEX_COLOR)


class UpdateCategorySchema(Schema):
    name = fields.Str(validate=validate.Length(min=1, max=50))
    color = fields.Str(validate=HEX_COLOR)


# ============================================
# Helper Functions
# ============================================

def require_admin():
    current_user = require_current_user()
    if not is_admin(current_user.role):
        raise ForbiddenError('Only administrators can manage categories')
    return current_user


def get_category_or_404(category_id):
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError.for_resource('Category', category_id)
    return category


def ensure_unique_name(name, exclude_id=None):
    query = Category.query.filter(Category.name == name)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise ConflictError('Category with this name already exists')


def task_count(category_id):
    return Task.query.filter_by(category_id=category_id).count()


def serialize_category(category, count=None):
    return {
        'id': category.id,
        'name': category.name,
        'color': category.color,
        'createdAt': category.created_at.isoformat() if category.created_at else None,
        'taskCount': task_count(category.id) if count is None else count
    }


# ============================================
# Routes
# ============================================

@categories_bp.route('', methods=['GET'])
@jwt_required()
def list_categories():
    """All categories by name, each with its task count"""
    rows = db.session.query(Category, func.count(Task.id))\
        .outerjoin(Task, Task.category_id == Category.id)\
        .group_by(Category.id)\
        .order_by(Category.name.asc()).all()

    return jsonify([serialize_category(category, count) for category, count in rows]), 200


@categories_bp.route('/<int:category_id>', methods=['GET'])
@jwt_required()
def get_category(category_id):
    """Category with the tasks in it the requester can see, newest first"""
    current_user = require_current_user()
    category = get_category_or_404(category_id)

    tasks = Task.query.options(
        joinedload(Task.creator),
        joinedload(Task.assignee)
    ).filter(and_(
        Task.category_id == category.id,
        visible_tasks_clause(current_user.id, current_user.role)
    )).order_by(Task.created_at.desc(), Task.id.desc()).all()

    data = serialize_category(category)
    data['tasks'] = [serialize_task(t) for t in tasks]
    return jsonify(data), 200


@categories_bp.route('', methods=['POST'])
@jwt_required()
def create_category():
    current_user = require_admin()
    result = load_request(CreateCategorySchema)

    ensure_unique_name(result['name'])

    category = Category(name=result['name'])
    if 'color' in result:
        category.color = result['color']

    try:
        db.session.add(category)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error("Category creation error", exc_info=True)
        raise

    logger.info(f"Category created: {category.name} by user {current_user.email}")

    return jsonify(serialize_category(category, 0)), 201


@categories_bp.route('/<int:category_id>', methods=['PATCH'])
@jwt_required()
def update_category(category_id):
    current_user = require_admin()
    category = get_category_or_404(category_id)
    result = load_request(UpdateCategorySchema)

    if 'name' in result and result['name'] != category.name:
        ensure_unique_name(result['name'], exclude_id=category.id)

    for field in ['name', 'color']:
        if field in result:
            setattr(category, field, result[field])

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error(f"Category update error for category {category_id}", exc_info=True)
        raise

    logger.info(f"Category {category_id} updated by user {current_user.email}")

    return jsonify(serialize_category(category)), 200


@categories_bp.route('/<int:category_id>', methods=['DELETE'])
@jwt_required()
def delete_category(category_id):
    """Tasks in the category become uncategorised"""
    current_user = require_admin()
    category = get_category_or_404(category_id)

    try:
        db.session.delete(category)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error(f"Category deletion error for category {category_id}", exc_info=True)
        raise

    logger.info(f"Category {category_id} deleted by user {current_user.email}")

    return jsonify({'message': 'Category deleted successfully'}), 200
