from flask_bcrypt import Bcrypt
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from models import db

# Created unbound here and attached in create_app(), so blueprints can
# import them without importing the app.
jwt = JWTManager()
bcrypt = Bcrypt()
cors = CORS()
limiter = Limiter(key_func=get_remote_address)

__all__ = ['db', 'jwt', 'bcrypt', 'cors', 'limiter']
