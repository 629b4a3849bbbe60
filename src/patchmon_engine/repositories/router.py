"""Repositories API router."""

from fastapi import APIRouter, Depends

from patchmon_engine.auth.dependencies import require_permission
from patchmon_engine.auth.permissions import Permission
from patchmon_engine.common.models import as_utc
from patchmon_engine.repositories.schemas import HostRepositoryToggle, RepositoryUpdate
from patchmon_engine.repositories.service import repository_dict

router = APIRouter(prefix="/repositories")


def _get_service():
    from patchmon_engine.deps import get_repository_service
    return get_repository_service()


def _get_db():
    from patchmon_engine.deps import get_db
    return get_db()


@router.get("")
async def list_repositories(_=Depends(require_permission(Permission.VIEW_HOSTS))):
    async with _get_db().get_session() as session:
        return await _get_service().list_repositories(session)


@router.get("/stats/summary")
async def repository_stats(_=Depends(require_permission(Permission.VIEW_HOSTS))):
    async with _get_db().get_session() as session:
        return await _get_service().stats(session)


@router.get("/host/{host_id}")
async def host_repositories(host_id: str, _=Depends(require_permission(Permission.VIEW_HOSTS))):
    async with _get_db().get_session() as session:
        return await _get_service().host_repositories(session, host_id)


@router.patch("/host/{host_id}/repository/{repository_id}")
async def toggle_host_repository(
    host_id: str,
    repository_id: str,
    body: HostRepositoryToggle,
    _=Depends(require_permission(Permission.MANAGE_HOSTS)),
):
    async with _get_db().get_session() as session:
        link, repo, host = await _get_service().set_host_repository_enabled(
            session, host_id, repository_id, body.is_enabled
        )
        state = "enabled" if body.is_enabled else "disabled"
        return {
            "message": f"Repository {state} for host {host.friendly_name}",
            "hostRepository": {
                "id": link.id,
                "host_id": link.host_id,
                "repository_id": link.repository_id,
                "is_enabled": link.is_enabled,
                "last_checked": as_utc(link.last_checked),
                "repository": repository_dict(repo),
                "host": {"friendly_name": host.friendly_name},
            },
        }


@router.delete("/cleanup/orphaned")
async def cleanup_orphaned(_=Depends(require_permission(Permission.MANAGE_HOSTS))):
    async with _get_db().get_session() as session:
        deleted = await _get_service().cleanup_orphaned(session)
    if not deleted:
        message = "No orphaned repositories found"
    else:
        message = f"Successfully deleted {len(deleted)} orphaned repositories"
    return {"message": message, "deletedCount": len(deleted), "deletedRepositories": deleted}


@router.get("/{repository_id}")
async def get_repository(repository_id: str, _=Depends(require_permission(Permission.VIEW_HOSTS))):
    async with _get_db().get_session() as session:
        return await _get_service().repository_detail(session, repository_id)


@router.put("/{repository_id}")
async def update_repository(
    repository_id: str,
    body: RepositoryUpdate,
    _=Depends(require_permission(Permission.MANAGE_HOSTS)),
):
    svc = _get_service()
    async with _get_db().get_session() as session:
        repo = await svc.update_repository(session, repository_id, body.model_dump(exclude_unset=True))
        response = repository_dict(repo)
        response["hostCount"] = await svc.count_hosts(session, repo.id)
        return response


@router.delete("/{repository_id}")
async def delete_repository(
    repository_id: str,
    _=Depends(require_permission(Permission.MANAGE_HOSTS)),
):
    async with _get_db().get_session() as session:
        deleted = await _get_service().delete_repository(session, repository_id)
    return {"message": "Repository deleted successfully", "deletedRepository": deleted}
