"""Dependency injection singletons for PatchMon-Engine."""

from patchmon_engine.auth.permissions import PermissionService
from patchmon_engine.auth.service import UserService
from patchmon_engine.auth.sessions import SessionManager
from patchmon_engine.common.config import get_settings
from patchmon_engine.common.database import DatabaseManager
from patchmon_engine.enrollment.service import EnrollmentService
from patchmon_engine.hosts.reconciliation import ReconciliationEngine
from patchmon_engine.hosts.service import HostService
from patchmon_engine.packages.service import PackageService
from patchmon_engine.repositories.service import RepositoryService
from patchmon_engine.server_settings.service import SettingsService

_db: DatabaseManager | None = None
_sessions: SessionManager | None = None
_permissions: PermissionService | None = None
_settings_service: SettingsService | None = None
_users: UserService | None = None
_hosts: HostService | None = None
_reconciliation: ReconciliationEngine | None = None
_enrollment: EnrollmentService | None = None
_packages: PackageService | None = None
_repositories: RepositoryService | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_session_manager() -> SessionManager:
    global _sessions
    if _sessions is None:
        _sessions = SessionManager(get_settings())
    return _sessions


def get_permission_service() -> PermissionService:
    global _permissions
    if _permissions is None:
        _permissions = PermissionService()
    return _permissions


def get_settings_service() -> SettingsService:
    global _settings_service
    if _settings_service is None:
        _settings_service = SettingsService(get_settings())
    return _settings_service


def get_user_service() -> UserService:
    global _users
    if _users is None:
        _users = UserService(
            get_settings(),
            sessions=get_session_manager(),
            settings_service=get_settings_service(),
        )
    return _users


def get_host_service() -> HostService:
    global _hosts
    if _hosts is None:
        _hosts = HostService(get_settings(), settings_service=get_settings_service())
    return _hosts


def get_reconciliation_engine() -> ReconciliationEngine:
    global _reconciliation
    if _reconciliation is None:
        _reconciliation = ReconciliationEngine(get_db())
    return _reconciliation


def get_enrollment_service() -> EnrollmentService:
    global _enrollment
    if _enrollment is None:
        _enrollment = EnrollmentService(get_settings(), hosts=get_host_service())
    return _enrollment


def get_package_service() -> PackageService:
    global _packages
    if _packages is None:
        _packages = PackageService(get_settings())
    return _packages


def get_repository_service() -> RepositoryService:
    global _repositories
    if _repositories is None:
        _repositories = RepositoryService(get_settings())
    return _repositories


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _sessions, _permissions, _settings_service, _users
    global _hosts, _reconciliation, _enrollment, _packages, _repositories
    _db = None
    _sessions = None
    _permissions = None
    _settings_service = None
    _users = None
    _hosts = None
    _reconciliation = None
    _enrollment = None
    _packages = None
    _repositories = None
