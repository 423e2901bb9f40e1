"""Masking of credentials in log output and outcome files.

Secrets come from two places: well-known environment variables (database
password, OCI API key material) and values registered at runtime, such as a
password read from a YAML config. Matching is literal; values shorter than
_MIN_SECRET_LENGTH are never masked.
"""

import logging
import os
import re

MASK = "***"

_SECRET_ENV_VARS = [
    "DB_PASS",
    "OCI_CLI_KEY_CONTENT",
    "OCI_CLI_PASSPHRASE",
]

_MIN_SECRET_LENGTH = 8

_registered: set[str] = set()

# Compiled on first use, dropped whenever a secret is registered
_patterns: list[re.Pattern] | None = None


def _secret_values() -> set[str]:
    candidates = set(_registered)
    candidates.update(os.environ.get(var, "") for var in _SECRET_ENV_VARS)
    return {value for value in candidates if len(value) >= _MIN_SECRET_LENGTH}


def _current_patterns() -> list[re.Pattern]:
    global _patterns
    if _patterns is None:
        # Longest first: a secret that contains another must be masked whole
        ordered = sorted(_secret_values(), key=len, reverse=True)
        _patterns = [re.compile(re.escape(value)) for value in ordered]
    return _patterns


def register_secret(value):
    """Mask *value* in everything logged or written from now on."""
    global _patterns
    if not value or len(value) < _MIN_SECRET_LENGTH or value in _registered:
        return
    _registered.add(value)
    _patterns = None


def _mask(text, patterns):
    for pattern in patterns:
        text = pattern.sub(MASK, text)
    return text


def redact_secrets(text: str) -> str:
    return _mask(text, _current_patterns())


def _mask_arg(value, patterns):
    return _mask(value, patterns) if isinstance(value, str) else value


class SecretRedactingFilter(logging.Filter):
    """Mask secrets in a record's message and its %-style arguments.

    Must be attached to handlers: filters on a logger do not run for records
    propagated from its children.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        patterns = _current_patterns()
        if not patterns:
            return True
        record.msg = _mask(str(record.msg), patterns)
        if isinstance(record.args, dict):
            record.args = {key: _mask_arg(value, patterns) for key, value in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(_mask_arg(arg, patterns) for arg in record.args)
        return True
