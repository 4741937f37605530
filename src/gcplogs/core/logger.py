import logging

from gcplogs.logging_setup import StructuredFormatter

# Request log lines emitted by the integrations
logger = logging.getLogger("gcplogs.requests")

# Ensure logs are visible by default if not configured elsewhere.
# configure_logging() removes this handler in favour of the root one.
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    setattr(handler, "_gcplogs_default", True)  # noqa: B010
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
