"""Hosts API router: agent check-ins, script distribution and host administration."""

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from patchmon_engine.auth.dependencies import require_host_credentials, require_permission
from patchmon_engine.auth.permissions import Permission
from patchmon_engine.common.config import get_settings
from patchmon_engine.common.models import as_utc
from patchmon_engine.common.ratelimit import agent_limit, limiter
from patchmon_engine.hosts import scripts
from patchmon_engine.hosts.models import HostModel
from patchmon_engine.hosts.schemas import (
    AutoUpdateToggle,
    BulkDeleteRequest,
    BulkGroupAssignment,
    FriendlyNameUpdate,
    HostCreate,
    HostGroupAssignment,
    HostGroupSummary,
    HostReport,
    HostSummary,
    MachineIdCheckRequest,
    NotesUpdate,
    PingRequest,
)

router = APIRouter(prefix="/hosts")

CRONTAB_HINT = {
    "shouldUpdate": True,
    "message": "Please ensure your crontab is up to date with current interval settings",
    "command": "update-crontab",
}


def _get_service():
    from patchmon_engine.deps import get_host_service
    return get_host_service()


def _get_engine():
    from patchmon_engine.deps import get_reconciliation_engine
    return get_reconciliation_engine()


def _get_settings_service():
    from patchmon_engine.deps import get_settings_service
    return get_settings_service()


def _get_db():
    from patchmon_engine.deps import get_db
    return get_db()


def _get_scripts() -> scripts.ScriptStore:
    return scripts.ScriptStore(get_settings().agents_dir)


def _group_summary(group) -> HostGroupSummary | None:
    return HostGroupSummary.model_validate(group) if group is not None else None


def _script_response(body: str, filename: str, attachment: bool = False, media_type: str = "text/plain"):
    disposition = "attachment" if attachment else "inline"
    return PlainTextResponse(
        body,
        media_type=media_type,
        headers={"Content-Disposition": f'{disposition}; filename="{filename}"'},
    )


# ── Agent endpoints ──

@router.post("/register")
async def register_disabled():
    return JSONResponse(
        status_code=400,
        content={
            "error": "Host registration has been disabled. Please contact your administrator to add this host to PatchMon.",
            "deprecated": True,
            "message": "Hosts must now be pre-created by administrators with specific API credentials.",
        },
    )


@router.post("/update")
@limiter.limit(agent_limit)
async def update_host(
    request: Request,
    body: HostReport,
    host: HostModel = Depends(require_host_credentials),
):
    result = await _get_engine().reconcile(host.id, body)
    response = {
        "message": "Host updated successfully",
        "packagesProcessed": result.packages_processed,
        "updatesAvailable": result.updates_available,
        "securityUpdates": result.security_updates,
    }
    if result.auto_update:
        response["crontabUpdate"] = CRONTAB_HINT
    return response


@router.post("/ping")
@limiter.limit(agent_limit)
async def ping(
    request: Request,
    body: PingRequest | None = None,
    host: HostModel = Depends(require_host_credentials),
):
    async with _get_db().get_session() as session:
        updated = await _get_service().touch(session, host.id)
        response = {
            "message": "Ping successful",
            "timestamp": as_utc(updated.last_update).isoformat(),
            "friendlyName": updated.friendly_name,
        }
        if body is not None and body.triggerCrontabUpdate and updated.auto_update:
            response["crontabUpdate"] = {
                "shouldUpdate": True,
                "message": "Update interval changed, please run: /usr/local/bin/patchmon-agent.sh update-crontab",
                "command": "update-crontab",
            }
        return response


@router.get("/info")
async def host_info(host: HostModel = Depends(require_host_credentials)):
    return {
        "id": host.id,
        "friendly_name": host.friendly_name,
        "hostname": host.hostname,
        "ip": host.ip,
        "os_type": host.os_type,
        "os_version": host.os_version,
        "architecture": host.architecture,
        "agent_version": host.agent_version,
        "status": host.status,
        "api_id": host.api_id,
        "machine_id": host.machine_id,
    }


@router.post("/check-machine-id")
async def check_machine_id(
    body: MachineIdCheckRequest,
    _host: HostModel = Depends(require_host_credentials),
):
    async with _get_db().get_session() as session:
        existing = await _get_service().find_by_machine_id(session, body.machine_id)
        if existing is None:
            return {"exists": False, "message": "Machine not yet enrolled"}
        return {
            "exists": True,
            "host": {
                "id": existing.id,
                "friendly_name": existing.friendly_name,
                "machine_id": existing.machine_id,
                "api_id": existing.api_id,
                "status": existing.status,
                "created_at": as_utc(existing.created_at).isoformat(),
            },
            "message": "This machine is already enrolled",
        }


@router.get("/settings")
async def agent_settings(host: HostModel = Depends(require_host_credentials)):
    async with _get_db().get_session() as session:
        server_settings = await _get_settings_service().get(session)
    return {"auto_update": server_settings.auto_update, "host_auto_update": host.auto_update}


# ── Script distribution ──

@router.get("/agent/download")
async def download_agent(
    version: str | None = Query(None),
    _host: HostModel = Depends(require_host_credentials),
):
    async with _get_db().get_session() as session:
        server_settings = await _get_settings_service().get(session)
        if version:
            row = await _get_service().get_agent_version(session, version)
            template = row.script_content
        else:
            template = _get_scripts().read(scripts.AGENT_SCRIPT)
    return _script_response(
        scripts.render_agent_script(template, server_settings.curl_flags),
        scripts.AGENT_SCRIPT,
        attachment=True,
        media_type="application/x-shellscript",
    )


@router.get("/agent/version")
async def agent_version():
    current = scripts.extract_agent_version(_get_scripts().read(scripts.AGENT_SCRIPT))
    return {
        "currentVersion": current,
        "downloadUrl": f"{get_settings().api_prefix}/hosts/agent/download",
        "releaseNotes": f"PatchMon Agent v{current}",
        "minServerVersion": None,
    }


@router.get("/install")
async def install_script(
    force: str | None = Query(None),
    host: HostModel = Depends(require_host_credentials),
):
    template = _get_scripts().read(scripts.INSTALL_SCRIPT)
    async with _get_db().get_session() as session:
        server_settings = await _get_settings_service().get(session)
    body = scripts.render_install_script(
        template,
        server_url=server_settings.server_url,
        api_id=host.api_id,
        api_key=host.api_key,
        curl_flags=server_settings.curl_flags,
        force=force in ("true", "1"),
    )
    return _script_response(body, scripts.INSTALL_SCRIPT)


@router.get("/remove")
async def remove_script():
    template = _get_scripts().read(scripts.REMOVE_SCRIPT)
    async with _get_db().get_session() as session:
        server_settings = await _get_settings_service().get(session)
    return _script_response(
        scripts.render_remove_script(template, server_settings.curl_flags),
        scripts.REMOVE_SCRIPT,
    )


# ── Admin ──

@router.post("/create", status_code=201)
async def create_host(
    body: HostCreate,
    _=Depends(require_permission(Permission.MANAGE_HOSTS)),
):
    async with _get_db().get_session() as session:
        svc = _get_service()
        host, api_key = await svc.create_host(session, body.friendly_name, body.hostGroupId)
        group = await svc.require_group(session, body.hostGroupId) if body.hostGroupId else None
        return {
            "message": "Host created successfully",
            "hostId": host.id,
            "friendlyName": host.friendly_name,
            "apiId": host.api_id,
            "apiKey": api_key,
            "hostGroup": _group_summary(group),
            "instructions": "Use these credentials in your patchmon agent configuration. "
                            "System information will be automatically detected when the agent connects.",
        }


@router.get("/admin/list", response_model=list[HostSummary])
async def list_hosts(_=Depends(require_permission(Permission.VIEW_HOSTS))):
    async with _get_db().get_session() as session:
        rows = await _get_service().list_hosts(session)
        return [
            HostSummary(
                id=r["host"].id,
                friendly_name=r["host"].friendly_name,
                hostname=r["host"].hostname,
                ip=r["host"].ip,
                os_type=r["host"].os_type,
                os_version=r["host"].os_version,
                architecture=r["host"].architecture,
                agent_version=r["host"].agent_version,
                api_id=r["host"].api_id,
                machine_id=r["host"].machine_id,
                status=r["host"].status,
                effective_status=r["effective_status"],
                auto_update=r["host"].auto_update,
                notes=r["host"].notes,
                last_update=as_utc(r["host"].last_update),
                created_at=as_utc(r["host"].created_at),
                host_group=_group_summary(r["group"]),
            )
            for r in rows
        ]


@router.delete("/bulk")
async def bulk_delete(
    body: BulkDeleteRequest,
    _=Depends(require_permission(Permission.MANAGE_HOSTS)),
):
    async with _get_db().get_session() as session:
        deleted = await _get_service().bulk_delete(session, body.hostIds)
    return {
        "message": f"{len(deleted)} host{'s' if len(deleted) != 1 else ''} deleted successfully",
        "deletedCount": len(deleted),
        "deletedHosts": deleted,
    }


@router.put("/bulk/group")
async def bulk_assign_group(
    body: BulkGroupAssignment,
    _=Depends(require_permission(Permission.MANAGE_HOSTS)),
):
    async with _get_db().get_session() as session:
        hosts = await _get_service().bulk_assign_group(session, body.hostIds, body.hostGroupId)
        return {
            "message": f"Successfully updated {len(hosts)} host{'s' if len(hosts) != 1 else ''}",
            "updatedCount": len(hosts),
            "hosts": [
                {"id": h.id, "friendly_name": h.friendly_name, "host_group_id": h.host_group_id}
                for h in hosts
            ],
        }


@router.delete("/{host_id}")
async def delete_host(
    host_id: str,
    _=Depends(require_permission(Permission.MANAGE_HOSTS)),
):
    async with _get_db().get_session() as session:
        host = await _get_service().delete_host(session, host_id)
    return {
        "message": "Host deleted successfully",
        "deleted": {"id": host.id, "friendly_name": host.friendly_name},
    }


@router.post("/{host_id}/regenerate-credentials")
async def regenerate_credentials(
    host_id: str,
    _=Depends(require_permission(Permission.MANAGE_HOSTS)),
):
    async with _get_db().get_session() as session:
        host = await _get_service().regenerate_credentials(session, host_id)
        return {
            "message": "API credentials regenerated successfully",
            "hostname": host.friendly_name,
            "apiId": host.api_id,
            "apiKey": host.api_key,
            "warning": "Previous credentials are now invalid. Update your agent configuration.",
        }


@router.put("/{host_id}/group")
async def assign_group(
    host_id: str,
    body: HostGroupAssignment,
    _=Depends(require_permission(Permission.MANAGE_HOSTS)),
):
    async with _get_db().get_session() as session:
        host, group = await _get_service().assign_group(session, host_id, body.hostGroupId)
        return {
            "message": "Host group updated successfully",
            "host": {
                "id": host.id,
                "friendly_name": host.friendly_name,
                "host_group": _group_summary(group),
            },
        }


@router.patch("/{host_id}/friendly-name")
async def update_friendly_name(
    host_id: str,
    body: FriendlyNameUpdate,
    _=Depends(require_permission(Permission.MANAGE_HOSTS)),
):
    async with _get_db().get_session() as session:
        host = await _get_service().update_friendly_name(session, host_id, body.friendly_name)
        return {
            "message": "Friendly name updated successfully",
            "host": {"id": host.id, "friendly_name": host.friendly_name},
        }


@router.patch("/{host_id}/notes")
async def update_notes(
    host_id: str,
    body: NotesUpdate,
    _=Depends(require_permission(Permission.MANAGE_HOSTS)),
):
    async with _get_db().get_session() as session:
        host = await _get_service().update_notes(session, host_id, body.notes)
        return {
            "message": "Notes updated successfully",
            "host": {"id": host.id, "friendly_name": host.friendly_name, "notes": host.notes},
        }


@router.patch("/{host_id}/auto-update")
async def toggle_auto_update(
    host_id: str,
    body: AutoUpdateToggle,
    _=Depends(require_permission(Permission.MANAGE_HOSTS)),
):
    async with _get_db().get_session() as session:
        host = await _get_service().set_auto_update(session, host_id, body.auto_update)
        state = "enabled" if host.auto_update else "disabled"
        return {
            "message": f"Host auto-update {state} successfully",
            "host": {"id": host.id, "friendly_name": host.friendly_name, "auto_update": host.auto_update},
        }
