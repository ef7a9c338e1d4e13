# This file is part of guestnet. See LICENSE file for license information.
"""schema.py: Validation of guestnet configuration against its jsonschema."""
import json
import logging
import os
import re
from typing import List, NamedTuple, Optional

from jsonschema import Draft4Validator, FormatChecker

from guestnet.util import load_text_file

LOG = logging.getLogger(__name__)

# When bumping the schema version due to incompatible changes add a new
# schema-guestnet-config-v#.json and point CONFIG_SCHEMA_FILE at it.
CONFIG_SCHEMA_FILE = "schema-guestnet-config-v1.json"


class SchemaProblem(NamedTuple):
    path: str
    message: str

    def format(self) -> str:
        return f"{self.path}: {self.message}"


SchemaProblems = List[SchemaProblem]


def _format_schema_problems(
    schema_problems: SchemaProblems,
    *,
    prefix: Optional[str] = None,
    separator: str = ", ",
) -> str:
    formatted = separator.join(map(lambda p: p.format(), schema_problems))
    if prefix:
        formatted = f"{prefix}{formatted}"
    return formatted


class SchemaValidationError(ValueError):
    """Raised when validating a guestnet config against the schema."""

    def __init__(self, schema_errors: Optional[SchemaProblems] = None):
        """Init the exception with a list of schema errors.

        @param schema_errors: A list of SchemaProblem(flat.config.key, msg)
        """
        self.schema_errors = sorted(set(schema_errors or []))
        super().__init__(
            _format_schema_problems(
                self.schema_errors, prefix="guestnet config schema errors: "
            )
        )

    def has_errors(self) -> bool:
        return bool(self.schema_errors)


def get_schema_dir() -> str:
    return os.path.join(os.path.dirname(os.path.abspath(__file__)), "schemas")


def get_schema() -> dict:
    """Return the configuration jsonschema.

    Return empty schema when the schema file cannot be read.
    """
    schema_file = os.path.join(get_schema_dir(), CONFIG_SCHEMA_FILE)
    try:
        return json.loads(load_text_file(schema_file))
    except (IOError, OSError):
        LOG.warning(
            "Skipping config schema validation. No JSON schema file found %s.",
            schema_file,
        )
        return {}


def validate_config(
    config: dict,
    schema: Optional[dict] = None,
    strict: bool = False,
) -> bool:
    """Validate provided config meets the schema definition.

    @param config: Dict of guestnet configuration settings.
    @param schema: jsonschema dict to validate against. If None, use the
        packaged schema.
    @param strict: Boolean, when True raise SchemaValidationError instead of
        logging warnings.

    @raises: SchemaValidationError when strict and config does not validate.
    @returns: True when config is valid.
    """
    if schema is None:
        schema = get_schema()
    validator = Draft4Validator(schema, format_checker=FormatChecker())

    errors: SchemaProblems = []
    for schema_error in sorted(
        validator.iter_errors(config), key=lambda e: list(e.path)
    ):
        path = ".".join([str(p) for p in schema_error.path])
        if not path and schema_error.validator == "additionalProperties":
            # an issue with invalid top-level property
            prop_match = re.match(
                r".*\('(?P<name>.*)' was unexpected\)", schema_error.message
            )
            if prop_match:
                path = prop_match["name"]
        errors.append(SchemaProblem(path, schema_error.message))

    if not errors:
        return True
    if strict:
        raise SchemaValidationError(errors)
    LOG.warning(
        _format_schema_problems(
            errors,
            prefix="guestnet config failed schema validation!\n",
            separator="\n",
        )
    )
    return False
