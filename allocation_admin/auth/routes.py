from flask_jwt_extended import create_access_token, jwt_required
from werkzeug.security import check_password_hash

from . import bp
from ..model import User
from ..utils.api import err, ok
from ..utils.decorators import _current_user
from ..utils.parsing import json_object


@bp.post("/login")
def login():
    data = json_object()
    email = data.get("email")
    password = data.get("password")
    if not isinstance(email, str) or not isinstance(password, str):
        return err("Email and password are required", 400)
    email = email.strip().lower()
    if not email or not password:
        return err("Email and password are required", 400)
    user = User.query.filter_by(email=email).first()
    if not user or not check_password_hash(user.password_hash, password):
        return err("Invalid email or password", 401)

    access_token = create_access_token(identity=str(user.id))
    return ok("You've logged in successfully", {"user": user.as_dict(), "token": access_token})


@bp.get("/me")
@jwt_required()
def me():
    user = _current_user()
    if not user:
        return err("user not found", 404)
    return ok("user", {"user": user.as_dict()})
