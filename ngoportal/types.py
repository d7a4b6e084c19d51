"""Enums shared across the portal."""

from enum import StrEnum


class Role(StrEnum):
    BEAM_ADMIN = "beam_admin"
    PARTNER_ADMIN = "partner_admin"
    BOARD = "board"
    MUSICIAN = "musician"
    SUBSCRIBER = "subscriber"
    AUDIENCE = "audience"


class Capability(StrEnum):
    AUTHENTICATED = "authenticated"
    ADMIN = "admin"
    SUBSCRIBER = "subscriber"


class AreaId(StrEnum):
    PROFESSIONAL = "professional"
    COMMUNITY = "community"
    CHAMBER = "chamber"
    PUBLISHING = "publishing"
    BUSINESS = "business"


class ProspectStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DECLINED = "declined"


class RequestStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class BookingKind(StrEnum):
    BOOKING = "booking"
    COMMUNITY_INTEREST = "community_orchestra_interest"


class Audience(StrEnum):
    ALL = "all"
    VIEWER = "viewer"
    PARTICIPANT_ADMIN = "participant_admin"


class PortalPath(StrEnum):
    HOME = "/home"
    RECORDINGS = "/studio/recordings"
    PROJECTS = "/projects"
    DASHBOARD = "/dashboard"
    ADMIN = "/admin"
    VIEWER = "/viewer"
    VIEWER_BOOK = "/viewer/book"
    SUBSCRIBER = "/subscriber"
    SIGN_IN = "/sign-in"
    MUSICIAN_SELECT_PROJECT = "/musician/select-project"
    JOIN_PARTICIPANT = "/join/participant"
    PUBLISHING_SIGNUP = "/publishing/signup"


class IntegrationProvider(StrEnum):
    GOOGLE = "google"
    OUTLOOK = "outlook"


class SearchKind(StrEnum):
    MAIL = "mail"
    DRIVE = "drive"
