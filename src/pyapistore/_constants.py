"""Internal constants shared across the library."""

from __future__ import annotations

DEFAULT_DATA_PATH = "data"
USER_AGENT = "pyapistore"

# Mutation verbs; full names are ``<VERB>_<MODEL_NAME_UPPER>``.
ADD = "ADD"
DELETE = "DELETE"
CLEAR = "CLEAR"
QUEUE_ACTION = "QUEUE_ACTION"
UNQUEUE_ACTION = "UNQUEUE_ACTION"
RESET_QUEUE = "RESET_QUEUE"

# Entity fields masked in API traces unless configured otherwise.
DEFAULT_REDACT_FIELDS: frozenset[str] = frozenset(
    {"password", "secret", "token", "accesstoken", "refreshtoken", "apikey", "authorization", "cookie"}
)

# Suffix appended to a collection URL for bulk deletes.
BULK_DELETE_SUFFIX = "/delete"


def mutation_name(verb: str, model_name: str) -> str:
    """Return the dispatch name of a mutation, e.g. ``ADD_WIDGET``."""
    return f"{verb}_{model_name.upper()}"
