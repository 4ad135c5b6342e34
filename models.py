from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from db import Base
from utils import utc_now


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    createdAt = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class OrganizationLocation(Base):
    __tablename__ = "organization_locations"
    __table_args__ = (UniqueConstraint("organizationId", "name", name="uq_locations_org_name"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    address = Column(Text, nullable=False, default="")
    city = Column(String, nullable=False, default="")
    state = Column(String, nullable=False, default="")
    country = Column(String, nullable=False, default="")
    organizationId = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    createdAt = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class OrganizationLineOfBusiness(Base):
    __tablename__ = "organization_line_of_businesses"
    __table_args__ = (UniqueConstraint("organizationId", "name", name="uq_lobs_org_name"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    organizationId = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    createdAt = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class OrganizationProcess(Base):
    __tablename__ = "organization_processes"
    __table_args__ = (UniqueConstraint("organizationId", "name", name="uq_processes_org_name"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(String, nullable=False, default="active")
    inductionDays = Column(Integer, nullable=False, default=0)
    trainingDays = Column(Integer, nullable=False, default=0)
    certificationDays = Column(Integer, nullable=False, default=0)
    ojtDays = Column(Integer, nullable=False, default=0)
    ojtCertificationDays = Column(Integer, nullable=False, default=0)
    lineOfBusinessId = Column(Integer, ForeignKey("organization_line_of_businesses.id"), nullable=False, index=True)
    organizationId = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    createdAt = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updatedAt = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String, nullable=False, unique=True, index=True)
    passwordHash = Column(Text, nullable=False, default="")
    fullName = Column(Text, nullable=False, default="")
    employeeId = Column(String, nullable=True, unique=True)
    email = Column(String, nullable=True, unique=True)
    phoneNumber = Column(String, nullable=False, default="")
    role = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False, default="active")
    locationId = Column(Integer, ForeignKey("organization_locations.id"), nullable=True, index=True)
    managerId = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    organizationId = Column(Integer, ForeignKey("organizations.id"), nullable=True, index=True)
    dateOfJoining = Column(Date, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    certified = Column(Boolean, nullable=False, default=False)
    lastLoginAt = Column(DateTime(timezone=True), nullable=True)
    createdAt = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updatedAt = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)


class RolePermission(Base):
    __tablename__ = "role_permissions"
    __table_args__ = (UniqueConstraint("organizationId", "role", name="uq_role_permissions_org_role"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    role = Column(String, nullable=False)
    permissionsJson = Column(Text, nullable=False, default="[]")
    organizationId = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    updatedBy = Column(Integer, nullable=True)
    createdAt = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updatedAt = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)


class OrganizationHoliday(Base):
    __tablename__ = "organization_holidays"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    date = Column(Date, nullable=False, index=True)
    isRecurring = Column(Boolean, nullable=False, default=False)
    # Null location: applies to every location of the organization.
    locationId = Column(Integer, ForeignKey("organization_locations.id"), nullable=True, index=True)
    organizationId = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    createdAt = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updatedAt = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)


class OrganizationBatch(Base):
    __tablename__ = "organization_batches"
    __table_args__ = (
        UniqueConstraint("organizationId", "name", name="uq_batches_org_name"),
        Index("ix_batches_org_status", "organizationId", "status"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    batchCategory = Column(String, nullable=False, default="new_training")
    status = Column(String, nullable=False, default="planned", index=True)
    capacityLimit = Column(Integer, nullable=False, default=0)

    processId = Column(Integer, ForeignKey("organization_processes.id"), nullable=False, index=True)
    locationId = Column(Integer, ForeignKey("organization_locations.id"), nullable=False, index=True)
    lineOfBusinessId = Column(Integer, ForeignKey("organization_line_of_businesses.id"), nullable=False, index=True)
    trainerId = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    organizationId = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)

    startDate = Column(Date, nullable=False)
    endDate = Column(Date, nullable=True)

    inductionStartDate = Column(Date, nullable=True)
    inductionEndDate = Column(Date, nullable=True)
    trainingStartDate = Column(Date, nullable=True)
    trainingEndDate = Column(Date, nullable=True)
    certificationStartDate = Column(Date, nullable=True)
    certificationEndDate = Column(Date, nullable=True)
    ojtStartDate = Column(Date, nullable=True)
    ojtEndDate = Column(Date, nullable=True)
    ojtCertificationStartDate = Column(Date, nullable=True)
    ojtCertificationEndDate = Column(Date, nullable=True)
    handoverToOpsDate = Column(Date, nullable=True)

    actualInductionStartDate = Column(Date, nullable=True)
    actualInductionEndDate = Column(Date, nullable=True)
    actualTrainingStartDate = Column(Date, nullable=True)
    actualTrainingEndDate = Column(Date, nullable=True)
    actualCertificationStartDate = Column(Date, nullable=True)
    actualCertificationEndDate = Column(Date, nullable=True)
    actualOjtStartDate = Column(Date, nullable=True)
    actualOjtEndDate = Column(Date, nullable=True)
    actualOjtCertificationStartDate = Column(Date, nullable=True)
    actualOjtCertificationEndDate = Column(Date, nullable=True)
    actualHandoverToOpsDate = Column(Date, nullable=True)

    weeklyOffDaysJson = Column(Text, nullable=False, default='["Saturday", "Sunday"]')
    considerHolidays = Column(Boolean, nullable=False, default=True)

    createdAt = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updatedAt = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)


class UserBatchProcess(Base):
    __tablename__ = "user_batch_processes"
    __table_args__ = (
        UniqueConstraint("userId", "batchId", "processId", name="uq_user_batch_process"),
        Index("ix_ubp_batch_status", "batchId", "status"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    userId = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    batchId = Column(Integer, ForeignKey("organization_batches.id"), nullable=False, index=True)
    processId = Column(Integer, ForeignKey("organization_processes.id"), nullable=False)
    status = Column(String, nullable=False, default="active")
    traineeStatus = Column(String, nullable=True)
    isManualStatus = Column(Boolean, nullable=False, default=False)
    joinedAt = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    completedAt = Column(DateTime(timezone=True), nullable=True)
    createdAt = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updatedAt = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)


class BatchHistory(Base):
    __tablename__ = "batch_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    batchId = Column(Integer, ForeignKey("organization_batches.id"), nullable=False, index=True)
    eventType = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    previousValue = Column(String, nullable=True)
    newValue = Column(String, nullable=True)
    date = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)
    userId = Column(Integer, ForeignKey("users.id"), nullable=False)
    organizationId = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)


class BatchEvent(Base):
    __tablename__ = "batch_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    batchId = Column(Integer, ForeignKey("organization_batches.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    startDate = Column(DateTime(timezone=True), nullable=False)
    endDate = Column(DateTime(timezone=True), nullable=False)
    eventType = Column(String, nullable=False, default="other")
    status = Column(String, nullable=False, default="scheduled")
    refresherReason = Column(Text, nullable=True)
    organizationId = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    createdBy = Column(Integer, ForeignKey("users.id"), nullable=False)
    createdAt = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updatedAt = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)


class BatchPhaseChangeRequest(Base):
    __tablename__ = "batch_phase_change_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    batchId = Column(Integer, ForeignKey("organization_batches.id"), nullable=False, index=True)
    trainerId = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    managerId = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    currentPhase = Column(String, nullable=False)
    requestedPhase = Column(String, nullable=False)
    justification = Column(Text, nullable=False, default="")
    status = Column(String, nullable=False, default="pending", index=True)
    managerComments = Column(Text, nullable=True)
    organizationId = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    createdAt = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updatedAt = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)


class AuditLog(Base):
    __tablename__ = "audit_log"

    logId = Column(String, primary_key=True)
    entityType = Column(String, nullable=False, default="", index=True)
    entityId = Column(String, nullable=False, default="", index=True)
    action = Column(String, nullable=False, default="", index=True)
    stageTag = Column(String, nullable=False, default="", index=True)
    remark = Column(Text, nullable=False, default="")
    actorUserId = Column(String, nullable=False, default="", index=True)
    actorRole = Column(String, nullable=False, default="", index=True)
    organizationId = Column(Integer, nullable=True, index=True)
    at = Column(Text, nullable=False, default="", index=True)
    metaJson = Column(Text, nullable=False, default="")
