"""
Permission administration endpoints, including batch creation.
"""

from flask import Blueprint, request

from core.errors import ValidationError
from core.responses import success_response
from hms.auth import get_container, permission_required
from hms.schemas import (
    BatchCreatePermissionRequest,
    CreatePermissionRequest,
    PermissionListQuery,
    UpdatePermissionRequest,
    parse_body,
    parse_query,
)

permissions_bp = Blueprint('permissions', __name__, url_prefix='/permissions')


@permissions_bp.route('', methods=['GET'])
@permission_required('permission', 'view')
def list_permissions():
    """Paginated permission list filterable by resource, action, search and is_active."""
    query = parse_query(PermissionListQuery, request.args)
    return success_response(
        get_container().permissions.list_permissions(query), "Permissions retrieved successfully"
    )


@permissions_bp.route('', methods=['POST'])
@permission_required('permission', 'create')
def create_permission():
    data = parse_body(CreatePermissionRequest, request.get_json(silent=True))
    permission = get_container().permissions.create_permission(
        name=data.name, resource=data.resource, action=data.action, description=data.description,
    )
    return success_response(permission, "Permission created successfully", 201)


@permissions_bp.route('/batch', methods=['POST'])
@permission_required('permission', 'create')
def create_permissions_batch():
    """
    Create several permissions. Accepts a JSON array or {"permissions": [...]}.

    In-batch duplicates reject the whole request before any write. Otherwise
    each item is created independently and failures are reported per index.
    """
    payload = request.get_json(silent=True)
    if isinstance(payload, list):
        payload = {"permissions": payload}
    data = parse_body(BatchCreatePermissionRequest, payload)

    result = get_container().permissions.create_batch(data.permissions)
    total = len(data.permissions)
    if not result.ok:
        raise ValidationError(
            f"Failed to create {len(result.failed)} out of {total} permissions. "
            f"{len(result.created)} were created successfully.",
            errors=[{"field": f["field"], "message": f["message"]} for f in result.failed],
            data={"created": result.created, "failed": result.failed},
        )
    return success_response(result.created, "Permissions batch created successfully", 201)


@permissions_bp.route('/<permission_id>', methods=['GET'])
@permission_required('permission', 'view')
def get_permission(permission_id):
    return success_response(
        get_container().permissions.get_permission(permission_id), "Permission retrieved successfully"
    )


@permissions_bp.route('/<permission_id>', methods=['PUT'])
@permission_required('permission', 'update')
def update_permission(permission_id):
    data = parse_body(UpdatePermissionRequest, request.get_json(silent=True))
    permission = get_container().permissions.update_permission(
        permission_id, data.model_dump(exclude_none=True)
    )
    return success_response(permission, "Permission updated successfully")


@permissions_bp.route('/<permission_id>', methods=['DELETE'])
@permission_required('permission', 'delete')
def delete_permission(permission_id):
    get_container().permissions.delete_permission(permission_id)
    return success_response(message="Permission deleted successfully")
