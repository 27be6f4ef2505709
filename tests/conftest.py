"""Shared test fixtures and configuration."""

from typing import Any
from unittest.mock import MagicMock

import pytest

from callname.config import Settings
from callname.processors.redactor import Redactor
from callname.services.google_contacts import GoogleContactsService
from callname.telephony import Call, CallDetails, CallDirection, StaticSubscriptions

# 2022-04-29 22:02:49.123 UTC, 18:02:49.123 in New York
CREATION_TIME_MS = 1651269769123
TEST_TIMEZONE = "America/New_York"


# ============================================
# Settings
# ============================================

def get_test_settings(**overrides: Any) -> Settings:
    """Get test-specific settings, ignoring any .env file."""
    values: dict[str, Any] = {
        "filename_template": None,
        "timezone": TEST_TIMEZONE,
        "google_client_id": None,
        "google_client_secret": None,
        "google_refresh_token": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ============================================
# Calls
# ============================================

def make_details(**overrides: Any) -> CallDetails:
    """Build call details for a simple incoming call."""
    values: dict[str, Any] = {
        "creation_time_millis": CREATION_TIME_MS,
        "handle": "tel:+15551234567",
        "caller_display_name": "John Doe",
        "contact_display_name": None,
        "direction": CallDirection.INCOMING,
        "account_handle": "sim-a",
    }
    values.update(overrides)
    return CallDetails(**values)


@pytest.fixture
def simple_call() -> Call:
    """A one-on-one incoming call."""
    return Call(make_details())


@pytest.fixture
def conference_call() -> Call:
    """A conference with two participants."""
    parent = Call(make_details(
        handle=None,
        caller_display_name=None,
        direction=CallDirection.UNKNOWN,
        is_conference=True,
    ))
    parent.add_child(make_details(handle="tel:+15551111", caller_display_name="Alice"))
    parent.add_child(make_details(handle="tel:+15552222", caller_display_name="Bob"))
    return parent


# ============================================
# Collaborators
# ============================================

@pytest.fixture
def mock_contacts() -> MagicMock:
    """Configured contacts service that knows no one."""
    contacts = MagicMock(spec=GoogleContactsService)
    contacts.is_configured.return_value = True
    contacts.lookup_contact_name.return_value = None
    return contacts


@pytest.fixture
def dual_sim() -> StaticSubscriptions:
    return StaticSubscriptions(slots={"sim-a": 0, "sim-b": 1})


@pytest.fixture
def single_sim() -> StaticSubscriptions:
    return StaticSubscriptions(slots={"sim-a": 0})


@pytest.fixture
def redactor() -> Redactor:
    return Redactor()
