"""
Shared module for configuration and infrastructure used by the tabledesk app.

STRUCTURE:
- tabledesk_shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging
  - constants.py: Roles, status enums, transition maps

- tabledesk_shared.infrastructure: Database and request plumbing
  - db.py: SQLAlchemy engine, sessions, get_db()
  - correlation.py: Request correlation IDs for logs

- tabledesk_shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging
  - schemas.py: Pydantic request/response schemas

IMPORT EXAMPLES:
    from tabledesk_shared.infrastructure.db import get_db, get_db_context
    from tabledesk_shared.config.settings import settings
    from tabledesk_shared.config.constants import OrderStatus, ORDER_TRANSITIONS
    from tabledesk_shared.utils.exceptions import NotFoundError, ForbiddenError
"""
