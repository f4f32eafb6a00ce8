"""Enum definitions for application constants."""

from enum import Enum


class Role(str, Enum):
    """
    Profile roles within an organization.

    - ADMIN: created by provisioning for the organization's first user
    - STAFF: day-to-day client work
    """

    ADMIN = "admin"
    STAFF = "staff"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


class SubscriptionStatus(str, Enum):
    """Billing state carried on the profile."""

    TRIAL = "trial"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


class Plan(str, Enum):
    """Plans offered at sign-up."""

    STARTER = "starter"
    PRO = "pro"

    @classmethod
    def has_value(cls, value: str) -> bool:
        return value in cls._value2member_map_


class FieldType(str, Enum):
    """Intake form field types."""

    TEXT = "text"
    TEXTAREA = "textarea"
    SELECT = "select"
    DATE = "date"
    EMAIL = "email"
    PHONE = "phone"
    NUMBER = "number"


class ProvisioningStatus(str, Enum):
    """Outcome of an ensure-provisioned attempt."""

    PROVISIONED = "success"
    ALREADY_PROVISIONED = "already_provisioned"
    NEEDS_DETAILS = "needs_details"

