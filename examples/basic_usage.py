"""
Basic usage example for moltlog.

Runs in local mode by default so no database is needed. Set
LOG_MONGODB_URI and LOG_TO_MONGO=true (and drop ``local=True``) to ship the
same records to MongoDB.
"""

import sys
from pathlib import Path

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from moltlog import create_logger


def main() -> None:
    """Demonstrate basic moltlog usage."""
    logger = create_logger("example-app", local=True, level="debug")

    logger.info("Molt logger running")
    logger.info("Example log with metadata", user="demo", action="start")
    logger.debug("Debug message")
    logger.warn("Sample warning")
    logger.error("Sample error")

    # Request-scoped child logger
    request_logger = logger.child(reqId="req-1", endpoint="GET /users")
    request_logger.info("users listed", count=3)

    try:
        raise ValueError("bad input")
    except ValueError as exc:
        logger.error("validation failed", exc=exc)

    logger.close()
    print("\nLogger demo complete.", file=sys.stderr)


if __name__ == "__main__":
    main()
