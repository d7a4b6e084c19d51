"""SQLModel database table models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlmodel import Field, SQLModel

from ngoportal.types import RequestStatus


def _utc_now() -> datetime:
    """Return current UTC time as naive datetime for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def _new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Accounts and role claims
# ---------------------------------------------------------------------------


class UserAccount(SQLModel, table=True):
    """Profile and authoritative role claim for an authenticated subject."""

    __tablename__ = "users"

    uid: str = Field(primary_key=True)
    email: str = Field(default="", index=True)
    display_name: str = ""
    role: str | None = None  # see ngoportal.types.Role
    beam_admin: bool = Field(default=False)
    partner_admin: bool = Field(default=False)
    board: bool = Field(default=False)
    subscriber: bool = Field(default=False)
    stripe_customer_id: str | None = Field(default=None, unique=True)
    booking_credits: float = Field(default=0)
    monthly_credit_allotment: float | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------


class Prospect(SQLModel, table=True):
    __tablename__ = "prospects"

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str
    email: str | None = None
    phone: str | None = None
    instrument: str | None = None
    project_id: str = Field(index=True)
    status: str = Field(default="pending")  # pending | confirmed | declined
    confirmation_token: str = Field(unique=True)
    invited_by: str
    invited_at: datetime = Field(default_factory=_utc_now)
    expires_at: datetime
    confirmed_at: datetime | None = None
    declined_at: datetime | None = None
    confirmed_by_user_id: str | None = None
    confirmed_by_email: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


# ---------------------------------------------------------------------------
# Intake requests
# ---------------------------------------------------------------------------


class AdminStaffJoinRequest(SQLModel, table=True):
    __tablename__ = "admin_staff_join_requests"

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(index=True)
    selections_json: str
    status: str = Field(default=RequestStatus.PENDING.value)
    source: str = Field(default="join-admin-staff")
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class AdminRoleRequest(SQLModel, table=True):
    __tablename__ = "admin_requests"

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(index=True)
    role_id: str
    role_label: str
    area_id: str | None = None
    area_title: str | None = None
    status: str = Field(default=RequestStatus.PENDING.value)
    created_at: datetime = Field(default_factory=_utc_now)


class BookingRequest(SQLModel, table=True):
    __tablename__ = "booking_requests"

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(index=True)
    kind: str = Field(default="booking")  # booking | community_orchestra_interest
    date: str | None = None
    location: str | None = None
    instrumentation: str | None = None
    notes: str = ""
    credits_used: float | None = None
    orchestra_id: str | None = None
    orchestra_name: str | None = None
    instrument: str | None = None
    status: str = Field(default=RequestStatus.PENDING.value)
    created_at: datetime = Field(default_factory=_utc_now)


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


class Donation(SQLModel, table=True):
    __tablename__ = "donations"

    id: str = Field(default_factory=_new_id, primary_key=True)
    donor_name: str = "Anonymous"
    donor_email: str = ""
    musician_name: str = ""
    musician_email: str = ""
    amount: float = 0
    message: str = ""
    anonymous: bool = False
    stripe_session_id: str = Field(unique=True)
    created_at: datetime = Field(default_factory=_utc_now)


class SubscriptionRecord(SQLModel, table=True):
    __tablename__ = "subscriptions"

    stripe_subscription_id: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    user_email: str = ""
    stripe_customer_id: str
    stripe_price_id: str = ""
    status: str
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


# ---------------------------------------------------------------------------
# External integrations
# ---------------------------------------------------------------------------


class Integration(SQLModel, table=True):
    """OAuth grant for a connected mail/drive account. Never returned to non-admins."""

    __tablename__ = "integrations"

    id: str = Field(primary_key=True)  # {provider}_{normalised email}
    provider: str = Field(index=True)  # google | outlook
    user_id: str
    account_email: str = "Unknown"
    account_name: str = "Unknown"
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime
    scope: str = ""
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class RosterMusician(SQLModel, table=True):
    __tablename__ = "roster_musicians"

    id: str = Field(default_factory=_new_id, primary_key=True)
    project_id: str = Field(index=True)
    name: str
    email: str = Field(index=True)  # stored lower-cased
    instrument: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)


# ---------------------------------------------------------------------------
# Content and audit
# ---------------------------------------------------------------------------


class HomeSlidesDocument(SQLModel, table=True):
    __tablename__ = "portal_home_slides"

    tenant_id: str = Field(primary_key=True)
    slides_json: str = "[]"
    updated_at: datetime = Field(default_factory=_utc_now)


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(index=True)
    action: str = Field(index=True)
    resource_type: str = ""
    resource_id: str = ""
    details_json: str = "{}"
    ip_address: str = ""
    request_id: str = ""
    created_at: datetime = Field(default_factory=_utc_now)
