"""
Notification models - in-app alerts for organization members.
Membership rows are mirrored from the auth service; notifications are owned here.
"""
import uuid
from datetime import datetime
from typing import Optional, Dict, Any

from sqlmodel import SQLModel, Field
from sqlalchemy import Column

from lead_qualifier.database import JSONType


class MemberRole:
    OWNER = "owner"
    ADMIN = "admin"
    MANAGER = "manager"
    MEMBER = "member"
    VIEWER = "viewer"

    # Roles alerted about hot leads
    LEAD_ALERTS = (ADMIN, MANAGER)


class NotificationType:
    HOT_LEAD = "hot_lead"


class OrganizationMember(SQLModel, table=True):
    """
    A user's membership in an organization and their role in it.
    """
    __tablename__ = "organization_member"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(index=True)
    org_id: uuid.UUID = Field(index=True)
    email: Optional[str] = None

    # Role in this organization
    role: str = Field(default=MemberRole.MEMBER)  # owner, admin, manager, member, viewer

    # Status
    is_active: bool = Field(default=True)

    joined_at: datetime = Field(default_factory=datetime.utcnow)


class Notification(SQLModel, table=True):
    """
    In-app notification for one user. read_at is set when the user opens it.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    org_id: uuid.UUID = Field(index=True)
    user_id: uuid.UUID = Field(index=True)

    type: str = Field(index=True)  # hot_lead
    title: str
    message: Optional[str] = None
    data: Dict[str, Any] = Field(default={}, sa_column=Column(JSONType))
    # Example: {"lead_id": "...", "score": 86.5}

    read_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
