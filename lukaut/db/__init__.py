"""Database layer for Lukaut with async SQLAlchemy."""

from lukaut.db.connection import get_db, get_session, init_db
from lukaut.db.models import (
    AuditLogModel,
    Base,
    ClientModel,
    EmailTokenModel,
    ImageModel,
    InspectionModel,
    JobModel,
    RegulationModel,
    ReportModel,
    SiteModel,
    UserModel,
    ViolationModel,
    ViolationRegulationModel,
)

__all__ = [
    "Base",
    "UserModel",
    "EmailTokenModel",
    "ClientModel",
    "SiteModel",
    "InspectionModel",
    "ImageModel",
    "RegulationModel",
    "ViolationModel",
    "ViolationRegulationModel",
    "ReportModel",
    "JobModel",
    "AuditLogModel",
    "get_db",
    "get_session",
    "init_db",
]
