"""Process-level environment access for the database, security and worker modules."""

import logging
import os

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def require_env(name: str) -> str:
    """Return a mandatory variable; fail fast at import when it is absent."""
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"{name} is not set. Export it or add it to backend/.env.")
    return value


def load_env_file() -> None:
    """Merge a local .env into os.environ. Exported variables take precedence."""
    if load_dotenv(override=False):
        logger.info("[ENV] Loaded variables from local .env")
    else:
        logger.debug("[ENV] No local .env found")
