from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from retail_pos.auth import Principal, get_current_principal, require_permission
from retail_pos.dependencies import get_audit_log, get_client_ip, get_directory, get_store, unwrap
from retail_pos.models import Address, DayHours, ErrorCode, OperatingHours, Permission, StoreLocation
from retail_pos.schemas import StoreLocationIn, StoreLocationOut, StoreLocationPatch
from retail_pos.security.csrf import verify_csrf
from retail_pos.services.audit_service import AuditLog
from retail_pos.services.entity_store import EntityStore
from retail_pos.services.user_directory_service import UserDirectory

router = APIRouter(prefix='/stores', tags=['stores'], dependencies=[Depends(verify_csrf)])
branch_admin = require_permission(Permission.MANAGER_APPROVAL)


def _as_entities(values: dict) -> dict:
    values = {key: value for key, value in values.items() if value is not None or key == 'manager_id'}
    if values.get('address') is not None:
        values['address'] = Address(**values['address'])
    if values.get('operating_hours') is not None:
        values['operating_hours'] = OperatingHours(
            **{day: DayHours(**hours) for day, hours in values['operating_hours'].items()}
        )
    return values


def _location_out(location: StoreLocation, directory: UserDirectory) -> StoreLocationOut:
    out = StoreLocationOut.model_validate(location)
    manager = directory.get(location.manager_id) if location.manager_id else None
    out.manager_name = manager.full_name if manager else None
    return out


def _not_found(store_id: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={'code': ErrorCode.NOT_FOUND.value, 'message': f'StoreLocation {store_id} not found'},
    )


@router.get('', response_model=list[StoreLocationOut])
def list_stores(
    q: str | None = Query(None),
    store: EntityStore = Depends(get_store),
    directory: UserDirectory = Depends(get_directory),
    _: Principal = Depends(get_current_principal),
):
    locations = store.store_locations.list_all() if q is None else store.store_locations.search(q)
    return [_location_out(location, directory) for location in locations]


@router.get('/current', response_model=StoreLocationOut)
def current_store(
    store: EntityStore = Depends(get_store),
    directory: UserDirectory = Depends(get_directory),
    _: Principal = Depends(get_current_principal),
):
    location = store.current_store
    if location is None:
        raise HTTPException(
            status_code=404,
            detail={'code': ErrorCode.NO_STORE_SELECTED.value, 'message': 'No store selected'},
        )
    return _location_out(location, directory)


@router.put('/current/{store_id}', response_model=StoreLocationOut)
def select_store(
    store_id: str,
    request: Request,
    store: EntityStore = Depends(get_store),
    directory: UserDirectory = Depends(get_directory),
    audit: AuditLog = Depends(get_audit_log),
    principal: Principal = Depends(get_current_principal),
):
    location = unwrap(store.select_store(store_id))
    audit.log_audit(
        actor_principal_id=principal.id,
        action='STORE_SELECTED',
        ip=get_client_ip(request),
        metadata={'store_id': store_id},
    )
    return _location_out(location, directory)


@router.get('/{store_id}', response_model=StoreLocationOut)
def get_store_location(
    store_id: str,
    store: EntityStore = Depends(get_store),
    directory: UserDirectory = Depends(get_directory),
    _: Principal = Depends(get_current_principal),
):
    location = store.store_locations.get(store_id)
    if location is None:
        raise _not_found(store_id)
    return _location_out(location, directory)


@router.post('', response_model=StoreLocationOut, status_code=201)
def create_store_location(
    payload: StoreLocationIn,
    request: Request,
    store: EntityStore = Depends(get_store),
    directory: UserDirectory = Depends(get_directory),
    audit: AuditLog = Depends(get_audit_log),
    principal: Principal = Depends(branch_admin),
):
    location = unwrap(store.store_locations.create(StoreLocation(**_as_entities(payload.model_dump()))))
    audit.log_audit(
        actor_principal_id=principal.id,
        action='STORE_CREATED',
        ip=get_client_ip(request),
        metadata={'store_id': location.id},
    )
    return _location_out(location, directory)


@router.patch('/{store_id}', response_model=StoreLocationOut)
def update_store_location(
    store_id: str,
    payload: StoreLocationPatch,
    request: Request,
    store: EntityStore = Depends(get_store),
    directory: UserDirectory = Depends(get_directory),
    audit: AuditLog = Depends(get_audit_log),
    principal: Principal = Depends(branch_admin),
):
    changes = _as_entities(payload.model_dump(exclude_unset=True))
    location = unwrap(store.store_locations.update(store_id, **changes))
    audit.log_audit(
        actor_principal_id=principal.id,
        action='STORE_UPDATED',
        ip=get_client_ip(request),
        metadata={'store_id': store_id, 'fields': sorted(changes)},
    )
    return _location_out(location, directory)


@router.delete('/{store_id}', status_code=204)
def delete_store_location(
    store_id: str,
    request: Request,
    store: EntityStore = Depends(get_store),
    audit: AuditLog = Depends(get_audit_log),
    principal: Principal = Depends(branch_admin),
):
    unwrap(store.store_locations.delete(store_id))
    audit.log_audit(
        actor_principal_id=principal.id,
        action='STORE_DELETED',
        ip=get_client_ip(request),
        metadata={'store_id': store_id},
    )
