import logging
from typing import Optional

from core.utils import now_ms

logger = logging.getLogger(__name__)


class InstanceGuard:
    """
    Holds a token that is unique to one server process.

    Clients echo the token back on every request. A different token means the
    server restarted and the client's session no longer exists here.
    """

    def __init__(self, token: Optional[str] = None):
        self.token = token or str(now_ms())
        logger.info(f"✅ Server Instance ID: {self.token}")

    def is_current(self, client_token: Optional[str]) -> bool:
        if not client_token:
            return True
        return client_token == self.token
