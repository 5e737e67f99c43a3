from flask import Blueprint, current_app, jsonify
from flask_jwt_extended import create_access_token, get_jwt_identity, jwt_required
from marshmallow import Schema, fields, validate
import logging

from errors import AuthenticationFailed, ConflictError
from extensions import bcrypt, limiter
from models import db, User, Role
from validation import load_request

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)


# ============================================
# Input Validation Schemas
# ============================================

class RegisterSchema(Schema):
    """Registration input"""
    email = fields.Email(required=True, error_messages={
        'required': 'Email is required',
        'invalid': 'Invalid email format'
    })
    password = fields.Str(
        required=True,
        validate=validate.Length(min=8, max=128, error='Password must be 8-128 characters'),
        error_messages={'required': 'Password is required'}
    )
    name = fields.Str(
        required=True,
        validate=validate.Length(min=2, max=50, error='Name must be 2-50 characters'),
        error_messages={'required': 'Name is required'}
    )


class LoginSchema(Schema):
    """Login input"""
    email = fields.Email(required=True)
    password = fields.Str(required=True)


class UpdateProfileSchema(Schema):
    """Profile update input"""
    name = fields.Str(validate=validate.Length(min=2, max=50))
    avatar = fields.Str(allow_none=True, validate=validate.Length(max=500))


# ============================================
# Helper Functions
# ============================================

def serialize_user(user):
    return {
        'id': user.id,
        'email': user.email,
        'name': user.name,
        'role': user.role,
        'avatar': user.avatar,
        'createdAt': user.created_at.isoformat() if user.created_at else None
    }


def auth_response(user):
    """User profile plus a fresh access token"""
    return {
        'user': serialize_user(user),
        'access_token': create_access_token(identity=str(user.id))
    }


def get_current_user():
    """
    Load the user behind the current JWT

    Returns None when the token's subject no longer exists.
    """
    user_id = get_jwt_identity()
    if not user_id:
        return None
    return db.session.get(User, int(user_id))


def require_current_user():
    user = get_current_user()
    if user is None:
        logger.warning(f"Token valid but user not found: {get_jwt_identity()}")
        raise AuthenticationFailed('Authentication required')
    return user


# ============================================
# Register
# ============================================

@auth_bp.route('/register', methods=['POST'])
@limiter.limit(lambda: current_app.config['REGISTER_RATE_LIMIT'])
def register():
    """
    Create an account

    New accounts always get the USER role; admins are provisioned out of
    band.
    """
    result = load_request(RegisterSchema)
    email = result['email'].lower()

    if User.query.filter_by(email=email).first():
        raise ConflictError('Email already exists')

    user = User(
        email=email,
        name=result['name'],
        role=Role.USER.value,
        password_hash=bcrypt.generate_password_hash(result['password']).decode('utf-8')
    )

    try:
        db.session.add(user)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error(f"Registration error for {email}", exc_info=True)
        raise

    logger.info(f"New user registered: {user.email}")

    return jsonify({
        'message': 'User registered successfully',
        **auth_response(user)
    }), 201


# ============================================
# Login
# ============================================

@auth_bp.route('/login', methods=['POST'])
@limiter.limit(lambda: current_app.config['LOGIN_RATE_LIMIT'])
def login():
    """
    Exchange credentials for an access token

    The same error covers unknown email and wrong password so accounts
    cannot be enumerated.
    """
    result = load_request(LoginSchema)
    email = result['email'].lower()

    user = User.query.filter_by(email=email).first()

    if not user or not bcrypt.check_password_hash(user.password_hash, result['password']):
        logger.warning(f"Failed login attempt for email: {email}")
        raise AuthenticationFailed('Invalid credentials')

    logger.info(f"User logged in: {user.email}")

    return jsonify({
        'message': 'Login successful',
        **auth_response(user)
    }), 200


# ============================================
# Current user
# ============================================

@auth_bp.route('/me', methods=['GET'])
@jwt_required()
def get_me():
    user = require_current_user()
    return jsonify(serialize_user(user)), 200


@auth_bp.route('/me', methods=['PATCH'])
@jwt_required()
def update_me():
    """Update name and avatar of the current user"""
    user = require_current_user()
    result = load_request(UpdateProfileSchema)

    for field in ['name', 'avatar']:
        if field in result:
            setattr(user, field, result[field])

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error(f"Profile update error for {user.email}", exc_info=True)
        raise

    logger.info(f"User profile updated: {user.email}")

    return jsonify({
        'message': 'Profile updated successfully',
        'user': serialize_user(user)
    }), 200
