"""Call model supplied by the telephony platform."""

import enum
from dataclasses import dataclass, field
from typing import Optional, Protocol
from urllib.parse import unquote

SCHEME_TEL = "tel"


class CallDirection(str, enum.Enum):
    """Direction of a call as reported by the platform."""

    INCOMING = "incoming"
    OUTGOING = "outgoing"
    UNKNOWN = "unknown"


def split_handle(handle: str) -> tuple[str | None, str]:
    """Split a handle URI into its scheme and percent-decoded scheme-specific part.

    'tel:+1%20555' -> ('tel', '+1 555'). A handle without a scheme returns
    (None, handle).
    """
    scheme, sep, rest = handle.partition(":")
    if not sep or not scheme:
        return None, unquote(handle)
    return scheme.lower(), unquote(rest)


@dataclass(frozen=True)
class CallDetails:
    """Snapshot of the details of a single call.

    A new instance is delivered every time the platform reports a change.
    """

    creation_time_millis: int
    handle: Optional[str] = None  # URI, eg. 'tel:+15551234567'
    caller_display_name: Optional[str] = None
    contact_display_name: Optional[str] = None  # Resolved by the platform, if at all
    direction: Optional[CallDirection] = CallDirection.UNKNOWN  # None = not reported
    account_handle: Optional[str] = None  # Phone account / subscription identity
    is_conference: bool = False

    @property
    def phone_number(self) -> Optional[str]:
        """The phone number, if the handle uses the telephone scheme."""
        if not self.handle:
            return None

        scheme, number = split_handle(self.handle)
        if scheme != SCHEME_TEL or not number:
            return None
        return number


@dataclass(eq=False)
class Call:
    """A call tracked by identity.

    For conference calls, each party is a child of the conference's parent call.
    """

    details: CallDetails
    parent: Optional["Call"] = None
    children: list["Call"] = field(default_factory=list)

    def add_child(self, details: CallDetails) -> "Call":
        """Create a child call (conference participant) of this call."""
        child = Call(details=details, parent=self)
        self.children.append(child)
        return child


class SubscriptionProvider(Protocol):
    """Access to the device's SIM subscriptions."""

    def has_permission(self) -> bool:
        """Whether the phone state may be read."""
        ...

    def has_telephony_subscription(self) -> bool:
        """Whether the device supports telephony subscriptions at all."""
        ...

    def active_subscription_count(self) -> int:
        ...

    def sim_slot_index(self, account_handle: Optional[str]) -> Optional[int]:
        """Zero-based SIM slot of the subscription behind a phone account."""
        ...


class NoSubscriptions:
    """Subscription provider for hosts without any telephony capability."""

    def has_permission(self) -> bool:
        return False

    def has_telephony_subscription(self) -> bool:
        return False

    def active_subscription_count(self) -> int:
        return 0

    def sim_slot_index(self, account_handle: Optional[str]) -> Optional[int]:
        return None


@dataclass
class StaticSubscriptions:
    """Subscription provider backed by a fixed account handle -> SIM slot mapping."""

    slots: dict[str, int] = field(default_factory=dict)
    permission_granted: bool = True

    def has_permission(self) -> bool:
        return self.permission_granted

    def has_telephony_subscription(self) -> bool:
        return True

    def active_subscription_count(self) -> int:
        return len(self.slots)

    def sim_slot_index(self, account_handle: Optional[str]) -> Optional[int]:
        if account_handle is None:
            return None
        return self.slots.get(account_handle)
