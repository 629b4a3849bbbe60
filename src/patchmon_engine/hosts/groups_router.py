"""Host groups API router."""

from fastapi import APIRouter, Depends

from patchmon_engine.auth.dependencies import require_permission
from patchmon_engine.auth.permissions import Permission
from patchmon_engine.common.models import as_utc
from patchmon_engine.hosts.schemas import HostGroupCreate, HostGroupResponse, HostGroupUpdate

router = APIRouter(prefix="/host-groups")


def _get_service():
    from patchmon_engine.deps import get_host_service
    return get_host_service()


def _get_db():
    from patchmon_engine.deps import get_db
    return get_db()


def _to_response(group, host_count: int) -> HostGroupResponse:
    return HostGroupResponse(
        id=group.id,
        name=group.name,
        description=group.description,
        color=group.color,
        host_count=host_count,
        created_at=as_utc(group.created_at),
    )


@router.get("", response_model=list[HostGroupResponse])
async def list_groups(_=Depends(require_permission(Permission.VIEW_HOSTS))):
    async with _get_db().get_session() as session:
        rows = await _get_service().list_groups(session)
        return [_to_response(group, count) for group, count in rows]


@router.get("/{group_id}", response_model=HostGroupResponse)
async def get_group(group_id: str, _=Depends(require_permission(Permission.VIEW_HOSTS))):
    svc = _get_service()
    async with _get_db().get_session() as session:
        group = await svc.get_group(session, group_id)
        return _to_response(group, await svc.count_group_hosts(session, group.id))


@router.post("", response_model=HostGroupResponse, status_code=201)
async def create_group(
    body: HostGroupCreate,
    _=Depends(require_permission(Permission.MANAGE_HOSTS)),
):
    async with _get_db().get_session() as session:
        group = await _get_service().create_group(
            session, body.name, description=body.description, color=body.color
        )
        return _to_response(group, 0)


@router.put("/{group_id}", response_model=HostGroupResponse)
async def update_group(
    group_id: str,
    body: HostGroupUpdate,
    _=Depends(require_permission(Permission.MANAGE_HOSTS)),
):
    svc = _get_service()
    async with _get_db().get_session() as session:
        group = await svc.update_group(session, group_id, body.model_dump(exclude_unset=True))
        return _to_response(group, await svc.count_group_hosts(session, group.id))


@router.delete("/{group_id}")
async def delete_group(
    group_id: str,
    _=Depends(require_permission(Permission.MANAGE_HOSTS)),
):
    async with _get_db().get_session() as session:
        await _get_service().delete_group(session, group_id)
    return {"message": "Host group deleted successfully"}
