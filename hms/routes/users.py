"""
User administration endpoints plus the caller's own profile and password.
"""

from flask import Blueprint, g, request

from core.responses import success_response
from hms.auth import get_container, jwt_required, permission_required
from hms.schemas import (
    AssignRolesRequest,
    ChangePasswordRequest,
    CreateUserRequest,
    UpdateUserRequest,
    UserListQuery,
    parse_body,
    parse_query,
)

users_bp = Blueprint('users', __name__, url_prefix='/users')


# =============================================================================
# Self-service
# =============================================================================

@users_bp.route('/profile', methods=['GET'])
@jwt_required
def get_profile():
    return success_response(get_container().auth.profile(g.principal), "Profile retrieved successfully")


@users_bp.route('/password', methods=['PATCH'])
@jwt_required
def change_password():
    """Change the caller's password; the current one must be supplied."""
    data = parse_body(ChangePasswordRequest, request.get_json(silent=True))
    get_container().user_admin.change_password(g.principal.id, data.current_password, data.new_password)
    return success_response(message="Password changed successfully")


# =============================================================================
# Administration
# =============================================================================

@users_bp.route('', methods=['GET'])
@permission_required('user', 'view')
def list_users():
    query = parse_query(UserListQuery, request.args)
    return success_response(get_container().user_admin.list_users(query), "Users retrieved successfully")


@users_bp.route('', methods=['POST'])
@permission_required('user', 'create')
def create_user():
    data = parse_body(CreateUserRequest, request.get_json(silent=True))
    user = get_container().user_admin.create_user(data)
    return success_response(user, "User created successfully", 201)


@users_bp.route('/<user_id>', methods=['GET'])
@permission_required('user', 'view')
def get_user(user_id):
    return success_response(get_container().user_admin.get_user(user_id), "User retrieved successfully")


@users_bp.route('/<user_id>', methods=['PUT'])
@permission_required('user', 'update')
def update_user(user_id):
    data = parse_body(UpdateUserRequest, request.get_json(silent=True))
    user = get_container().user_admin.update_user(
        user_id, data.model_dump(exclude_none=True), acting_user_id=g.principal.id
    )
    return success_response(user, "User updated successfully")


@users_bp.route('/<user_id>/roles', methods=['PUT'])
@permission_required('user', 'update')
def assign_roles(user_id):
    """Replace the user's role assignments."""
    data = parse_body(AssignRolesRequest, request.get_json(silent=True))
    user = get_container().user_admin.assign_roles(user_id, data.role_ids)
    return success_response(user, "User roles updated successfully")


@users_bp.route('/<user_id>', methods=['DELETE'])
@permission_required('user', 'delete')
def delete_user(user_id):
    get_container().user_admin.delete_user(user_id, acting_user_id=g.principal.id)
    return success_response(message="User deleted successfully")
