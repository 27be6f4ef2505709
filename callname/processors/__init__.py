"""Filename generation and parsing modules."""

from callname.processors.filename_generator import OutputFilename, OutputFilenameGenerator
from callname.processors.redactor import Redactor, redact_truncate
from callname.processors.template import DEFAULT_FILENAME_TEMPLATE, Template

__all__ = [
    "OutputFilename",
    "OutputFilenameGenerator",
    "Redactor",
    "redact_truncate",
    "Template",
    "DEFAULT_FILENAME_TEMPLATE",
]
