"""Two-factor authentication enrolment API router."""

from fastapi import APIRouter, Depends

from patchmon_engine.auth import tfa
from patchmon_engine.auth.dependencies import AuthContext, require_user
from patchmon_engine.auth.schemas import (
    BackupCodesResponse,
    TfaDisableRequest,
    TfaSetupResponse,
    TfaStatusResponse,
    TfaTokenRequest,
)

router = APIRouter(prefix="/tfa")


def _get_service():
    from patchmon_engine.deps import get_user_service
    return get_user_service()


def _get_db():
    from patchmon_engine.deps import get_db
    return get_db()


@router.get("/setup", response_model=TfaSetupResponse)
async def setup(auth: AuthContext = Depends(require_user)):
    async with _get_db().get_session() as session:
        secret, url = await _get_service().begin_tfa_setup(session, auth.user.id)
    return TfaSetupResponse(secret=secret, otpauth_url=url)


@router.post("/verify-setup", response_model=BackupCodesResponse)
async def verify_setup(body: TfaTokenRequest, auth: AuthContext = Depends(require_user)):
    async with _get_db().get_session() as session:
        codes = await _get_service().confirm_tfa_setup(session, auth.user.id, body.token)
    return BackupCodesResponse(
        message="Two-factor authentication has been enabled successfully",
        backupCodes=codes,
    )


@router.post("/disable")
async def disable(body: TfaDisableRequest, auth: AuthContext = Depends(require_user)):
    async with _get_db().get_session() as session:
        await _get_service().disable_tfa(session, auth.user.id, body.password)
    return {"message": "Two-factor authentication has been disabled successfully"}


@router.get("/status", response_model=TfaStatusResponse)
async def status(auth: AuthContext = Depends(require_user)):
    async with _get_db().get_session() as session:
        user = await _get_service().get_user(session, auth.user.id)
        return TfaStatusResponse(
            enabled=user.tfa_enabled,
            hasBackupCodes=bool(tfa.decode_backup_codes(user.tfa_backup_codes)),
        )


@router.post("/regenerate-backup-codes", response_model=BackupCodesResponse)
async def regenerate_backup_codes(auth: AuthContext = Depends(require_user)):
    async with _get_db().get_session() as session:
        codes = await _get_service().regenerate_backup_codes(session, auth.user.id)
    return BackupCodesResponse(
        message="Backup codes have been regenerated successfully",
        backupCodes=codes,
    )
