"""Filename templates.

A template is literal text with variable references:

    {date}_{direction}_{phone_number}
    call_{date:%Y-%m-%d}_{caller_name}

A reference is ``{name}`` or ``{name:argument}``. A backslash escapes the
next character, so literal braces are written as ``\\{`` and ``\\}``.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Union

from callname.exceptions import TemplateSyntaxError

_ESCAPE = "\\"
_SPECIAL = frozenset("{}:\\")


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class VariableRef:
    name: str
    arg: Optional[str] = None


Segment = Union[Literal, VariableRef]


@dataclass(frozen=True)
class AfterPrefix:
    """The variable immediately follows ``literal``.

    If ``at_start`` is set, the literal is anchored at the start of the
    template, so only its first occurrence in a filename needs to be tried.
    """

    literal: str
    at_start: bool


@dataclass(frozen=True)
class Arbitrary:
    """The variable's position can't be bounded by a literal (eg. it follows another variable)."""

    def __repr__(self) -> str:
        return "ARBITRARY"


ARBITRARY = Arbitrary()

VariableRefLocation = Union[AfterPrefix, Arbitrary]

Resolver = Callable[[str, Optional[str]], Optional[str]]


def _escape(text: str, special: frozenset[str]) -> str:
    return "".join(_ESCAPE + c if c in special else c for c in text)


class Template:
    """Immutable sequence of literal and variable segments."""

    def __init__(self, segments: tuple[Segment, ...]):
        self.segments = segments

    @classmethod
    def parse(cls, template: str) -> "Template":
        """Parse a template string.

        Raises:
            TemplateSyntaxError: If braces are unbalanced, a variable name is
                empty, or the template ends with a dangling escape
        """
        segments: list[Segment] = []
        literal: list[str] = []
        i = 0

        def flush_literal() -> None:
            if literal:
                segments.append(Literal("".join(literal)))
                literal.clear()

        while i < len(template):
            c = template[i]

            if c == _ESCAPE:
                if i + 1 >= len(template):
                    raise TemplateSyntaxError("Dangling escape character", template, i)
                literal.append(template[i + 1])
                i += 2
            elif c == "{":
                flush_literal()
                ref, i = cls._parse_variable(template, i)
                segments.append(ref)
            elif c == "}":
                raise TemplateSyntaxError("Unmatched '}'", template, i)
            else:
                literal.append(c)
                i += 1

        flush_literal()

        return cls(tuple(segments))

    @staticmethod
    def _parse_variable(template: str, start: int) -> tuple[VariableRef, int]:
        # template[start] is the opening brace
        name: list[str] = []
        arg: Optional[list[str]] = None
        i = start + 1

        while i < len(template):
            c = template[i]
            current = name if arg is None else arg

            if c == _ESCAPE:
                if i + 1 >= len(template):
                    raise TemplateSyntaxError("Dangling escape character", template, i)
                current.append(template[i + 1])
                i += 2
            elif c == "}":
                ref = VariableRef(
                    "".join(name).strip(),
                    None if arg is None else "".join(arg),
                )
                if not ref.name:
                    raise TemplateSyntaxError("Empty variable name", template, start)
                return ref, i + 1
            elif c == "{":
                raise TemplateSyntaxError("Nested '{'", template, i)
            elif c == ":" and arg is None:
                arg = []
                i += 1
            else:
                current.append(c)
                i += 1

        raise TemplateSyntaxError("Unterminated variable reference", template, start)

    def evaluate(self, resolver: Resolver) -> str:
        """Render the template.

        The resolver is called exactly once per variable reference, in
        template order. A result of None renders as an empty string.
        """
        output: list[str] = []

        for segment in self.segments:
            if isinstance(segment, Literal):
                output.append(segment.text)
            else:
                value = resolver(segment.name, segment.arg)
                if value is not None:
                    output.append(value)

        return "".join(output)

    def find_variable_ref(
        self, name: str
    ) -> Optional[tuple[VariableRef, list[VariableRefLocation]]]:
        """Find a variable and where each of its references sits in the template.

        Returns:
            The first reference to ``name`` and the locations of every
            reference, or None if the template never refers to it
        """
        first: Optional[VariableRef] = None
        locations: list[VariableRefLocation] = []

        for index, segment in enumerate(self.segments):
            if not isinstance(segment, VariableRef) or segment.name != name:
                continue

            if first is None:
                first = segment

            if index == 0:
                locations.append(AfterPrefix("", at_start=True))
            else:
                previous = self.segments[index - 1]
                if isinstance(previous, Literal):
                    locations.append(AfterPrefix(previous.text, at_start=index == 1))
                else:
                    locations.append(ARBITRARY)

        if first is None:
            return None

        return first, locations

    def __str__(self) -> str:
        parts = []
        for segment in self.segments:
            if isinstance(segment, Literal):
                parts.append(_escape(segment.text, frozenset("{}\\")))
            elif segment.arg is None:
                parts.append("{" + _escape(segment.name, _SPECIAL) + "}")
            else:
                parts.append(
                    "{" + _escape(segment.name, _SPECIAL) + ":"
                    + _escape(segment.arg, frozenset("{}\\")) + "}"
                )
        return "".join(parts)

    def __repr__(self) -> str:
        return f"Template({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Template):
            return NotImplemented
        return self.segments == other.segments

    def __hash__(self) -> int:
        return hash(self.segments)


DEFAULT_FILENAME_TEMPLATE = Template.parse("{date}_{direction}_{phone_number}")
