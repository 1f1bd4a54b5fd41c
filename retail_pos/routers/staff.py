from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from retail_pos.auth import Principal, require_permission
from retail_pos.dependencies import get_directory
from retail_pos.models import ErrorCode, Permission, UserRole
from retail_pos.schemas import StaffOut, StaffPageOut, StaffStatsOut
from retail_pos.services.user_directory_service import StaffSort, UserDirectory, staff_stats

router = APIRouter(prefix='/staff', tags=['staff'])
staff_view = require_permission(Permission.STAFF_VIEW)


@router.get('', response_model=StaffPageOut)
def list_staff(
    q: str | None = Query(None),
    role: UserRole | None = Query(None),
    department: str | None = Query(None),
    active: bool | None = Query(None),
    sort_by: StaffSort = Query(StaffSort.NAME),
    directory: UserDirectory = Depends(get_directory),
    _: Principal = Depends(staff_view),
):
    rows = directory.search(q, role=role, department=department, active=active, sort_by=sort_by)
    return StaffPageOut(
        staff=[StaffOut.model_validate(user) for user in rows],
        stats=StaffStatsOut.model_validate(staff_stats(directory.list_all())),
    )


@router.get('/{user_id}', response_model=StaffOut)
def get_staff_member(
    user_id: str,
    directory: UserDirectory = Depends(get_directory),
    _: Principal = Depends(staff_view),
):
    user = directory.get(user_id)
    if user is None:
        raise HTTPException(
            status_code=404,
            detail={'code': ErrorCode.NOT_FOUND.value, 'message': f'Staff member {user_id} not found'},
        )
    return StaffOut.model_validate(user)
