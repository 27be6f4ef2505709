"""Determine a recording's output filename from the details of a call."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from callname.config import Settings, get_settings
from callname.exceptions import CallMismatchError, TemplateSyntaxError
from callname.processors.date_format import DateFormatter, parse_timestamp
from callname.processors.redactor import Redactor, redact_truncate
from callname.processors.template import (
    DEFAULT_FILENAME_TEMPLATE,
    AfterPrefix,
    Template,
    VariableRefLocation,
)
from callname.processors.variables import (
    EvaluationContext,
    TemplateVariable,
    VariableResolver,
    replace_path_separators,
)
from callname.services.google_contacts import ContactsLookup, get_contacts_service
from callname.telephony import Call, CallDetails, NoSubscriptions, SubscriptionProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutputFilename:
    """A generated filename and its log-safe counterpart."""

    value: str
    redacted: str

    def __str__(self) -> str:
        return self.redacted


def load_template(template: Optional[str]) -> Template:
    """Parse the configured template, falling back to the default one."""
    if template is None:
        return DEFAULT_FILENAME_TEMPLATE

    try:
        return Template.parse(template)
    except TemplateSyntaxError as e:
        logger.warning(f"Invalid filename template; using default: {e}")
        return DEFAULT_FILENAME_TEMPLATE


def sanitize_filename(name: str) -> str:
    """Replace path separators with underscores and strip surrounding whitespace."""
    return replace_path_separators(name).strip()


def date_locations(template: Template) -> list[VariableRefLocation]:
    found = template.find_variable_ref(TemplateVariable.DATE.value)
    return found[1] if found is not None else []


class OutputFilenameGenerator:
    """Generates the output filename for a call, and parses timestamps back out of filenames.

    The call details, redactions, active date formatter and generated filename
    are all guarded by one lock. Call detail updates may arrive from a
    different thread than the final ``update(allow_blocking_calls=True)``.
    """

    def __init__(
        self,
        parent_call: Call,
        settings: Optional[Settings] = None,
        contacts: Optional[ContactsLookup] = None,
        subscriptions: Optional[SubscriptionProvider] = None,
    ):
        """
        Initialize the generator and compute the initial filename.

        Args:
            parent_call: The call being recorded (the parent call for conferences)
            settings: Settings providing the template and time zone
            contacts: Directory for manual contact name lookups
            subscriptions: SIM subscription information
        """
        settings = settings if settings is not None else get_settings()

        self._lock = threading.RLock()

        self._template = load_template(settings.filename_template)
        self._date_locations = date_locations(self._template)
        logger.info(f"Filename template: {self._template}")

        self.parent_call = parent_call
        self._is_conference = parent_call.details.is_conference
        self._call_details: dict[Call, CallDetails] = {parent_call: parent_call.details}
        if self._is_conference:
            for child in parent_call.children:
                self._call_details[child] = child.details

        self._redactor = Redactor(self._lock)
        self._variables = VariableResolver(
            self._redactor,
            contacts=contacts if contacts is not None else get_contacts_service(),
            subscriptions=subscriptions if subscriptions is not None else NoSubscriptions(),
            zone=settings.zone(),
        )

        self._filename: OutputFilename = self.update(False)

    @property
    def template(self) -> Template:
        return self._template

    @property
    def redactor(self) -> Redactor:
        return self._redactor

    @property
    def formatter(self) -> DateFormatter:
        with self._lock:
            return self._variables.formatter

    @property
    def call_timestamp(self) -> Optional[datetime]:
        """Timestamp of the call, once a template with a date has been evaluated."""
        with self._lock:
            return self._variables.call_timestamp

    @property
    def filename(self) -> OutputFilename:
        with self._lock:
            return self._filename

    def update_call_details(self, call: Call, details: CallDetails) -> None:
        """
        Update the filename with new details for a call.

        Args:
            call: Either the parent call or a child of the parent (for conference calls)
            details: The updated call details belonging to ``call``

        Raises:
            CallMismatchError: If ``call`` is neither the parent call nor one of its children
        """
        if call is not self.parent_call and call.parent is not self.parent_call:
            raise CallMismatchError(f"Not the parent call nor one of its children: {call!r}")

        with self._lock:
            self._call_details[call] = details
            self.update(False)

    def _evaluation_context(self, allow_blocking_calls: bool) -> EvaluationContext:
        parent = self._call_details[self.parent_call]
        if self._is_conference:
            parties = tuple(
                details for call, details in self._call_details.items()
                if call is not self.parent_call
            )
        else:
            parties = (parent,)

        return EvaluationContext(
            parent=parent,
            parties=parties,
            is_conference=self._is_conference,
            allow_blocking_calls=allow_blocking_calls,
        )

    def _generate(self, template: Template, allow_blocking_calls: bool) -> OutputFilename:
        with self._lock:
            resolver = self._variables.bind(self._evaluation_context(allow_blocking_calls))
            value = sanitize_filename(template.evaluate(resolver))

            return OutputFilename(value, self._redactor.redact(value))

    def update(self, allow_blocking_calls: bool) -> OutputFilename:
        """
        Regenerate the filename from the latest call details.

        Args:
            allow_blocking_calls: Whether blocking operations (contact lookups)
                may be performed. Only pass True for the final update.

        Returns:
            The new filename
        """
        with self._lock:
            try:
                filename = self._generate(self._template, allow_blocking_calls)
            except Exception:
                if self._template is DEFAULT_FILENAME_TEMPLATE:
                    raise

                logger.warning(f"Failed to evaluate custom template: {self._template}", exc_info=True)
                filename = self._generate(DEFAULT_FILENAME_TEMPLATE, allow_blocking_calls)
                self._date_locations = date_locations(DEFAULT_FILENAME_TEMPLATE)
            else:
                self._date_locations = date_locations(self._template)

            self._filename = filename
            logger.info(f"Updated filename: {filename}")

            return filename

    def _parse_timestamp(self, name: str) -> Optional[datetime]:
        formatter = self._variables.formatter

        for location in self._date_locations:
            if not isinstance(location, AfterPrefix):
                logger.debug("Date might be at an arbitrary location")
                continue

            search_index = 0

            while True:
                literal_pos = name.find(location.literal, search_index)
                if literal_pos < 0:
                    break

                timestamp_pos = literal_pos + len(location.literal)
                timestamp = parse_timestamp(formatter, name, timestamp_pos)
                if timestamp is not None:
                    return timestamp

                if location.at_start or not location.literal:
                    break
                search_index = timestamp_pos

        return None

    def parse_timestamp_from_filename(self, name: str) -> Optional[datetime]:
        """
        Recover the call timestamp from a filename generated with this template.

        Args:
            name: Filename, possibly with an extension

        Returns:
            The timestamp, or None if none could be found
        """
        with self._lock:
            timestamp = self._parse_timestamp(name)

        logger.debug(f"Parsed {timestamp} from {redact_truncate(name)}")

        return timestamp
