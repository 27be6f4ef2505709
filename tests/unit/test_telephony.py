"""Unit tests for the call model."""

from callname.telephony import Call, StaticSubscriptions, split_handle
from tests.conftest import make_details


class TestSplitHandle:
    """Tests for handle URI parsing."""

    def test_tel_handle(self) -> None:
        """The scheme is separated from the number."""
        assert split_handle("tel:+15551234567") == ("tel", "+15551234567")

    def test_scheme_is_case_insensitive(self) -> None:
        """Schemes are lowercased."""
        assert split_handle("TEL:123") == ("tel", "123")

    def test_percent_decoded(self) -> None:
        """The scheme-specific part is decoded."""
        assert split_handle("sip:alice%40example.com") == ("sip", "alice@example.com")

    def test_no_scheme(self) -> None:
        """A bare value has no scheme."""
        assert split_handle("5551234") == (None, "5551234")


class TestCallDetails:
    """Tests for CallDetails.phone_number."""

    def test_tel_number(self) -> None:
        assert make_details(handle="tel:+15551234567").phone_number == "+15551234567"

    def test_other_scheme(self) -> None:
        """Only telephone handles carry a phone number."""
        assert make_details(handle="sip:alice@example.com").phone_number is None

    def test_missing_handle(self) -> None:
        assert make_details(handle=None).phone_number is None

    def test_empty_number(self) -> None:
        assert make_details(handle="tel:").phone_number is None


class TestCall:
    """Tests for call identity."""

    def test_children_know_their_parent(self) -> None:
        parent = Call(make_details(is_conference=True))
        child = parent.add_child(make_details())

        assert child.parent is parent
        assert parent.children == [child]

    def test_identity_not_equality(self) -> None:
        """Calls with equal details are still different calls."""
        details = make_details()

        assert Call(details) != Call(details)
        assert len({Call(details), Call(details)}) == 2


class TestStaticSubscriptions:
    """Tests for the static subscription provider."""

    def test_slot_lookup(self) -> None:
        subscriptions = StaticSubscriptions(slots={"sim-a": 0, "sim-b": 1})

        assert subscriptions.active_subscription_count() == 2
        assert subscriptions.sim_slot_index("sim-b") == 1
        assert subscriptions.sim_slot_index(None) is None
