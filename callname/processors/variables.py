"""Resolution of filename template variables from call details."""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, Iterable, Optional

from callname.exceptions import InvalidDatePatternError
from callname.processors.date_format import DEFAULT_FORMATTER, DateFormatter, StrftimeFormatter
from callname.processors.redactor import Redactor
from callname.services.google_contacts import ContactsLookup
from callname.telephony import CallDetails, CallDirection, SubscriptionProvider

logger = logging.getLogger(__name__)


class TemplateVariable(str, enum.Enum):
    """Variables recognized in filename templates."""

    DATE = "date"
    DIRECTION = "direction"
    SIM_SLOT = "sim_slot"
    PHONE_NUMBER = "phone_number"
    CALLER_NAME = "caller_name"
    CONTACT_NAME = "contact_name"

    @classmethod
    def from_name(cls, name: str) -> Optional["TemplateVariable"]:
        try:
            return cls(name)
        except ValueError:
            return None


@dataclass(frozen=True)
class EvaluationContext:
    """Call information for a single template evaluation."""

    parent: CallDetails
    # The parent for a simple call, or every child (in insertion order) for a conference
    parties: tuple[CallDetails, ...]
    is_conference: bool
    allow_blocking_calls: bool


def call_timestamp(creation_time_millis: int, zone: Optional[tzinfo] = None) -> datetime:
    """Convert a creation time to an aware datetime in ``zone`` (system local zone if None)."""
    seconds, millis = divmod(creation_time_millis, 1000)
    utc = datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(milliseconds=millis)
    return utc.astimezone(zone)


# Never allowed in a generated filename
PATH_SEPARATORS = ("/", "\\")


def replace_path_separators(value: str) -> str:
    for separator in PATH_SEPARATORS:
        value = value.replace(separator, "_")
    return value


def _join_unique(values: Iterable[Optional[str]]) -> str:
    # dict preserves insertion order
    return ",".join(dict.fromkeys(v for v in values if v))


class VariableResolver:
    """Resolves template variables for a filename generator.

    Holds the state that survives across evaluations: the active date
    formatter and the most recently resolved call timestamp. Callers are
    expected to serialize access (the generator's lock).
    """

    def __init__(
        self,
        redactor: Redactor,
        contacts: Optional[ContactsLookup] = None,
        subscriptions: Optional[SubscriptionProvider] = None,
        zone: Optional[tzinfo] = None,
    ):
        self.redactor = redactor
        self.contacts = contacts
        self.subscriptions = subscriptions
        self.zone = zone
        self.formatter: DateFormatter = DEFAULT_FORMATTER
        self.call_timestamp: Optional[datetime] = None
        self._resolvers: dict[
            TemplateVariable, Callable[[EvaluationContext, Optional[str]], Optional[str]]
        ] = {
            TemplateVariable.DATE: self._resolve_date,
            TemplateVariable.DIRECTION: self._resolve_direction,
            TemplateVariable.SIM_SLOT: self._resolve_sim_slot,
            TemplateVariable.PHONE_NUMBER: self._resolve_phone_number,
            TemplateVariable.CALLER_NAME: self._resolve_caller_name,
            TemplateVariable.CONTACT_NAME: self._resolve_contact_name,
        }

    def bind(self, context: EvaluationContext) -> Callable[[str, Optional[str]], Optional[str]]:
        """Create the callback passed to ``Template.evaluate``."""

        def resolve(name: str, arg: Optional[str]) -> Optional[str]:
            variable = TemplateVariable.from_name(name)
            if variable is None:
                logger.warning(f"Unknown filename template variable: {name}")
                return None

            return self._resolvers[variable](context, arg)

        return resolve

    def _resolve_date(self, context: EvaluationContext, arg: Optional[str]) -> Optional[str]:
        self.call_timestamp = call_timestamp(context.parent.creation_time_millis, self.zone)

        if arg is not None:
            logger.debug(f"Using custom datetime pattern: {arg}")

            try:
                self.formatter = StrftimeFormatter(arg)
            except InvalidDatePatternError as e:
                logger.warning(f"Invalid custom datetime pattern: {arg}; using {self.formatter}: {e}")

        return self.formatter.format(self.call_timestamp)

    def _resolve_direction(self, context: EvaluationContext, arg: Optional[str]) -> Optional[str]:
        # The platform's call direction is meaningless for conference calls until
        # enough participants hang up that it becomes an emulated one-on-one call
        if context.is_conference:
            return "conference"

        direction = context.parent.direction
        if direction == CallDirection.INCOMING:
            return "in"
        if direction == CallDirection.OUTGOING:
            return "out"

        logger.debug(f"Call direction not available: {direction}")
        return None

    def _resolve_sim_slot(self, context: EvaluationContext, arg: Optional[str]) -> Optional[str]:
        subscriptions = self.subscriptions
        if subscriptions is None or not subscriptions.has_telephony_subscription():
            logger.debug("Telephony subscriptions not supported")
            return None
        if not subscriptions.has_permission():
            logger.debug("Permissions not granted for reading phone state")
            return None

        # Only include the SIM slot if the device has multiple active SIMs
        if subscriptions.active_subscription_count() <= 1:
            return None

        slot = subscriptions.sim_slot_index(context.parent.account_handle)
        if slot is None:
            logger.debug("No active subscription for the call's phone account")
            return None

        return str(slot + 1)

    def _redacted(self, context: EvaluationContext, joined: str, single: str, conference: str) -> Optional[str]:
        if not joined:
            return None

        # Register before the value escapes so it can never reach a log unredacted.
        # The form it takes after filename sanitization is registered as well.
        placeholder = conference if context.is_conference else single
        self.redactor.add_redaction(joined, placeholder)
        sanitized = replace_path_separators(joined)
        if sanitized != joined:
            self.redactor.add_redaction(sanitized, placeholder)
        return joined

    def _resolve_phone_number(self, context: EvaluationContext, arg: Optional[str]) -> Optional[str]:
        joined = _join_unique(d.phone_number for d in context.parties)
        return self._redacted(context, joined, "<phone number>", "<conference phone numbers>")

    def _resolve_caller_name(self, context: EvaluationContext, arg: Optional[str]) -> Optional[str]:
        joined = _join_unique(
            d.caller_display_name.strip() if d.caller_display_name else None
            for d in context.parties
        )
        return self._redacted(context, joined, "<caller name>", "<conference caller names>")

    def _resolve_contact_name(self, context: EvaluationContext, arg: Optional[str]) -> Optional[str]:
        names = []
        for details in context.parties:
            name = self.contact_display_name(details, context)
            names.append(name.strip() if name else None)

        joined = _join_unique(names)
        return self._redacted(context, joined, "<contact name>", "<conference contact names>")

    def contact_display_name(self, details: CallDetails, context: EvaluationContext) -> Optional[str]:
        """Get the contact name for a party, looking it up manually if allowed.

        The manual lookup blocks, so it only happens when the evaluation was
        started with ``allow_blocking_calls``.
        """
        if details.contact_display_name is not None:
            return details.contact_display_name

        # In conference calls, the platform sometimes doesn't provide the
        # contact name for every party
        if context.is_conference:
            logger.warning("Contact display name missing in conference child call")

        if not context.allow_blocking_calls:
            logger.debug("Manual lookup is disabled for this invocation")
            return None

        if self.contacts is None or not self.contacts.is_configured():
            logger.warning("Contact lookup not permitted or not configured")
            return None

        number = details.phone_number
        if number is None:
            logger.warning("Cannot determine phone number from call")
            return None

        logger.debug("Performing manual contact lookup")

        is_sip = "@" in number or "%40" in number
        try:
            name = self.contacts.lookup_contact_name(number, is_sip=is_sip)
        except Exception:
            logger.warning("Manual contact lookup failed", exc_info=True)
            return None

        if name is None:
            logger.debug("Contact not found via manual lookup")
        else:
            logger.debug("Found contact display name via manual lookup")

        return name
