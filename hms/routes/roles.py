"""
Role administration endpoints.
"""

from flask import Blueprint, request

from core.responses import success_response
from hms.auth import get_container, permission_required
from hms.schemas import CreateRoleRequest, RoleListQuery, UpdateRoleRequest, parse_body, parse_query

roles_bp = Blueprint('roles', __name__, url_prefix='/roles')


@roles_bp.route('', methods=['GET'])
@permission_required('role', 'view')
def list_roles():
    """Paginated role list with search, is_active filter and sorting."""
    query = parse_query(RoleListQuery, request.args)
    return success_response(get_container().roles.list_roles(query), "Roles retrieved successfully")


@roles_bp.route('', methods=['POST'])
@permission_required('role', 'create')
def create_role():
    data = parse_body(CreateRoleRequest, request.get_json(silent=True))
    role = get_container().roles.create_role(
        name=data.name,
        description=data.description,
        is_system_role=data.is_system_role,
        permission_ids=data.permission_ids,
    )
    return success_response(role, "Role created successfully", 201)


@roles_bp.route('/<role_id>', methods=['GET'])
@permission_required('role', 'view')
def get_role(role_id):
    return success_response(get_container().roles.get_role(role_id), "Role retrieved successfully")


@roles_bp.route('/<role_id>', methods=['PUT'])
@permission_required('role', 'update')
def update_role(role_id):
    """Partial update; permission_ids replaces the role's whole permission set."""
    data = parse_body(UpdateRoleRequest, request.get_json(silent=True))
    role = get_container().roles.update_role(role_id, data.model_dump(exclude_none=True))
    return success_response(role, "Role updated successfully")


@roles_bp.route('/<role_id>', methods=['DELETE'])
@permission_required('role', 'delete')
def delete_role(role_id):
    get_container().roles.delete_role(role_id)
    return success_response(message="Role deleted successfully")
