"""Unit tests for template variable resolution."""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from callname.processors.date_format import DEFAULT_FORMATTER, StrftimeFormatter
from callname.processors.redactor import Redactor
from callname.processors.variables import (
    EvaluationContext,
    TemplateVariable,
    VariableResolver,
    call_timestamp,
)
from callname.telephony import CallDetails, CallDirection, NoSubscriptions, StaticSubscriptions
from tests.conftest import CREATION_TIME_MS, TEST_TIMEZONE, make_details


def simple_context(details: CallDetails, allow_blocking_calls: bool = False) -> EvaluationContext:
    return EvaluationContext(
        parent=details,
        parties=(details,),
        is_conference=False,
        allow_blocking_calls=allow_blocking_calls,
    )


def conference_context(*children: CallDetails, allow_blocking_calls: bool = False) -> EvaluationContext:
    return EvaluationContext(
        parent=make_details(handle=None, is_conference=True),
        parties=children,
        is_conference=True,
        allow_blocking_calls=allow_blocking_calls,
    )


@pytest.fixture
def resolver_factory(redactor: Redactor) -> Callable[..., VariableResolver]:
    def make(**kwargs) -> VariableResolver:
        kwargs.setdefault("zone", ZoneInfo(TEST_TIMEZONE))
        return VariableResolver(redactor, **kwargs)
    return make


class TestTemplateVariable:
    """Tests for the variable enumeration."""

    def test_known_names(self) -> None:
        """Every documented variable is recognized."""
        names = {v.value for v in TemplateVariable}

        assert names == {"date", "direction", "sim_slot", "phone_number", "caller_name", "contact_name"}

    def test_unknown_name(self) -> None:
        """Unknown names map to None."""
        assert TemplateVariable.from_name("duration") is None


class TestCallTimestamp:
    """Tests for creation time conversion."""

    def test_converts_to_zone(self) -> None:
        """Epoch milliseconds become an aware datetime in the zone."""
        result = call_timestamp(CREATION_TIME_MS, ZoneInfo(TEST_TIMEZONE))

        assert result == datetime(2022, 4, 29, 22, 2, 49, 123000, tzinfo=timezone.utc)
        assert result.utcoffset() == timedelta(hours=-4)
        assert result.microsecond == 123000

    def test_defaults_to_local_zone(self) -> None:
        """Without a zone, the system local zone is used."""
        result = call_timestamp(CREATION_TIME_MS)

        assert result.tzinfo is not None
        assert result == datetime(2022, 4, 29, 22, 2, 49, 123000, tzinfo=timezone.utc)


class TestUnknownVariable:
    """Tests for unrecognized variables."""

    def test_omitted_and_logged(self, resolver_factory, caplog) -> None:
        """Unknown variables resolve to None with a warning."""
        resolve = resolver_factory().bind(simple_context(make_details()))

        with caplog.at_level(logging.WARNING):
            assert resolve("duration", None) is None

        assert "Unknown filename template variable: duration" in caplog.text


class TestDate:
    """Tests for the date variable."""

    def test_default_format(self, resolver_factory) -> None:
        """The default format includes milliseconds and the offset."""
        resolver = resolver_factory()
        resolve = resolver.bind(simple_context(make_details()))

        assert resolve("date", None) == "20220429_180249.123-0400"
        assert resolver.call_timestamp == datetime(2022, 4, 29, 22, 2, 49, 123000, tzinfo=timezone.utc)

    def test_custom_pattern_persists(self, resolver_factory) -> None:
        """A custom pattern stays active for later references."""
        resolver = resolver_factory()
        resolve = resolver.bind(simple_context(make_details()))

        assert resolve("date", "%Y-%m-%d") == "2022-04-29"
        assert resolve("date", None) == "2022-04-29"
        assert isinstance(resolver.formatter, StrftimeFormatter)

    def test_invalid_pattern_keeps_previous_formatter(self, resolver_factory, caplog) -> None:
        """A bad pattern is logged and the active formatter is kept."""
        resolver = resolver_factory()
        resolve = resolver.bind(simple_context(make_details()))

        with caplog.at_level(logging.WARNING):
            assert resolve("date", "%Q") == "20220429_180249.123-0400"

        assert resolver.formatter is DEFAULT_FORMATTER
        assert "Invalid custom datetime pattern" in caplog.text

    def test_invalid_pattern_after_custom_keeps_custom(self, resolver_factory) -> None:
        """The last valid custom pattern survives a bad one."""
        resolver = resolver_factory()
        resolve = resolver.bind(simple_context(make_details()))

        resolve("date", "%Y")

        assert resolve("date", "%Q") == "2022"


class TestDirection:
    """Tests for the direction variable."""

    @pytest.mark.parametrize(
        "direction,expected",
        [
            (CallDirection.INCOMING, "in"),
            (CallDirection.OUTGOING, "out"),
            (CallDirection.UNKNOWN, None),
            (None, None),
        ],
    )
    def test_simple_call(self, resolver_factory, direction, expected) -> None:
        """Incoming and outgoing map to in/out; anything else is omitted."""
        resolve = resolver_factory().bind(simple_context(make_details(direction=direction)))

        assert resolve("direction", None) == expected

    def test_conference(self, resolver_factory) -> None:
        """Conferences ignore the reported direction."""
        resolve = resolver_factory().bind(conference_context(make_details()))

        assert resolve("direction", None) == "conference"


class TestSimSlot:
    """Tests for the sim_slot variable."""

    def test_multiple_sims(self, resolver_factory, dual_sim) -> None:
        """The 1-based slot is used with more than one active SIM."""
        resolve = resolver_factory(subscriptions=dual_sim).bind(
            simple_context(make_details(account_handle="sim-b"))
        )

        assert resolve("sim_slot", None) == "2"

    def test_single_sim_omitted(self, resolver_factory, single_sim) -> None:
        """With a single SIM, the slot is meaningless."""
        resolve = resolver_factory(subscriptions=single_sim).bind(simple_context(make_details()))

        assert resolve("sim_slot", None) is None

    def test_permission_denied_omitted(self, resolver_factory) -> None:
        """Without permission, nothing is queried."""
        subscriptions = StaticSubscriptions(slots={"sim-a": 0, "sim-b": 1}, permission_granted=False)
        resolve = resolver_factory(subscriptions=subscriptions).bind(simple_context(make_details()))

        assert resolve("sim_slot", None) is None

    def test_no_telephony_omitted(self, resolver_factory) -> None:
        """Hosts without telephony never have a SIM slot."""
        resolve = resolver_factory(subscriptions=NoSubscriptions()).bind(simple_context(make_details()))

        assert resolve("sim_slot", None) is None

    def test_unknown_account_omitted(self, resolver_factory, dual_sim) -> None:
        """A phone account without a subscription is omitted."""
        resolve = resolver_factory(subscriptions=dual_sim).bind(
            simple_context(make_details(account_handle="voip"))
        )

        assert resolve("sim_slot", None) is None


class TestPhoneNumber:
    """Tests for the phone_number variable."""

    def test_simple_call_registers_redaction(self, resolver_factory, redactor) -> None:
        """The number is returned and redacted."""
        resolve = resolver_factory().bind(simple_context(make_details()))

        assert resolve("phone_number", None) == "+15551234567"
        assert redactor.redactions == {"+15551234567": "<phone number>"}

    def test_non_tel_scheme_omitted(self, resolver_factory, redactor) -> None:
        """SIP and other handles are not phone numbers."""
        resolve = resolver_factory().bind(simple_context(make_details(handle="sip:alice@example.com")))

        assert resolve("phone_number", None) is None
        assert redactor.redactions == {}

    def test_percent_encoded_number(self, resolver_factory) -> None:
        """The scheme-specific part is decoded."""
        resolve = resolver_factory().bind(simple_context(make_details(handle="tel:%2B15551234567")))

        assert resolve("phone_number", None) == "+15551234567"

    def test_conference_joins_children(self, resolver_factory, redactor) -> None:
        """Conference numbers are joined in order and redacted as one."""
        resolve = resolver_factory().bind(conference_context(
            make_details(handle="tel:+15551111"),
            make_details(handle=None),
            make_details(handle="tel:+15552222"),
        ))

        assert resolve("phone_number", None) == "+15551111,+15552222"
        assert redactor.redact("+15551111,+15552222") == "<conference phone numbers>"

    def test_conference_duplicates_joined_once(self, resolver_factory) -> None:
        """The same number appearing twice is listed once."""
        resolve = resolver_factory().bind(conference_context(
            make_details(handle="tel:+15551111"),
            make_details(handle="tel:+15551111"),
        ))

        assert resolve("phone_number", None) == "+15551111"


class TestCallerName:
    """Tests for the caller_name variable."""

    def test_trimmed(self, resolver_factory, redactor) -> None:
        """Names are trimmed before use."""
        resolve = resolver_factory().bind(simple_context(make_details(caller_display_name="  John Doe ")))

        assert resolve("caller_name", None) == "John Doe"
        assert redactor.redactions == {"John Doe": "<caller name>"}

    def test_blank_omitted(self, resolver_factory) -> None:
        """Blank names are skipped."""
        resolve = resolver_factory().bind(simple_context(make_details(caller_display_name="   ")))

        assert resolve("caller_name", None) is None

    def test_conference(self, resolver_factory, redactor) -> None:
        """Conference names skip blank parties."""
        resolve = resolver_factory().bind(conference_context(
            make_details(caller_display_name="Alice"),
            make_details(caller_display_name=""),
            make_details(caller_display_name="Bob"),
        ))

        assert resolve("caller_name", None) == "Alice,Bob"
        assert redactor.redactions == {"Alice,Bob": "<conference caller names>"}


class TestContactName:
    """Tests for the contact_name variable."""

    def test_platform_name_preferred(self, resolver_factory, mock_contacts, redactor) -> None:
        """A name supplied with the call details needs no lookup."""
        resolve = resolver_factory(contacts=mock_contacts).bind(
            simple_context(make_details(contact_display_name="Johnny"), allow_blocking_calls=True)
        )

        assert resolve("contact_name", None) == "Johnny"
        assert redactor.redactions == {"Johnny": "<contact name>"}
        mock_contacts.lookup_contact_name.assert_not_called()

    def test_no_lookup_without_blocking(self, resolver_factory, mock_contacts) -> None:
        """The blocking lookup only runs when allowed."""
        resolve = resolver_factory(contacts=mock_contacts).bind(simple_context(make_details()))

        assert resolve("contact_name", None) is None
        mock_contacts.lookup_contact_name.assert_not_called()

    def test_lookup_when_blocking_allowed(self, resolver_factory, mock_contacts) -> None:
        """A missing name is looked up by number."""
        mock_contacts.lookup_contact_name.return_value = "Jane Smith"
        resolve = resolver_factory(contacts=mock_contacts).bind(
            simple_context(make_details(), allow_blocking_calls=True)
        )

        assert resolve("contact_name", None) == "Jane Smith"
        mock_contacts.lookup_contact_name.assert_called_once_with("+15551234567", is_sip=False)

    def test_sip_hint(self, resolver_factory, mock_contacts) -> None:
        """Numbers containing @ are looked up as SIP addresses."""
        resolve = resolver_factory(contacts=mock_contacts).bind(
            simple_context(make_details(handle="tel:alice@example.com"), allow_blocking_calls=True)
        )

        resolve("contact_name", None)

        mock_contacts.lookup_contact_name.assert_called_once_with("alice@example.com", is_sip=True)

    def test_not_configured_skips_lookup(self, resolver_factory, mock_contacts) -> None:
        """Lookups need the contacts service to be permitted."""
        mock_contacts.is_configured.return_value = False
        resolve = resolver_factory(contacts=mock_contacts).bind(
            simple_context(make_details(), allow_blocking_calls=True)
        )

        assert resolve("contact_name", None) is None
        mock_contacts.lookup_contact_name.assert_not_called()

    def test_lookup_failure_omits_name(self, resolver_factory, mock_contacts, redactor, caplog) -> None:
        """A lookup that raises is logged and treated as not found."""
        mock_contacts.lookup_contact_name.side_effect = ConnectionError("network down")
        resolve = resolver_factory(contacts=mock_contacts).bind(
            simple_context(make_details(), allow_blocking_calls=True)
        )

        with caplog.at_level(logging.WARNING):
            assert resolve("contact_name", None) is None

        assert "Manual contact lookup failed" in caplog.text
        assert redactor.redactions == {}

    def test_no_contacts_service(self, resolver_factory) -> None:
        """Without a contacts service the variable is omitted."""
        resolve = resolver_factory(contacts=None).bind(
            simple_context(make_details(), allow_blocking_calls=True)
        )

        assert resolve("contact_name", None) is None

    def test_conference_mixes_platform_and_lookup(self, resolver_factory, mock_contacts, redactor) -> None:
        """Each party uses its own source of the contact name."""
        mock_contacts.lookup_contact_name.side_effect = lambda number, is_sip: {
            "+15552222": "Bob",
        }.get(number)
        resolve = resolver_factory(contacts=mock_contacts).bind(conference_context(
            make_details(handle="tel:+15551111", contact_display_name="Alice"),
            make_details(handle="tel:+15552222"),
            make_details(handle="tel:+15553333"),
            allow_blocking_calls=True,
        ))

        assert resolve("contact_name", None) == "Alice,Bob"
        assert redactor.redactions == {"Alice,Bob": "<conference contact names>"}
