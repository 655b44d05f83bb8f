"""First-time registration generation."""

import logging
from typing import Optional

from discord_bridge.constants import (
    ALIAS_NAMESPACE_REGEX,
    PROTOCOL_NAME,
    SENDER_LOCALPART,
    USER_NAMESPACE_REGEX,
)
from discord_bridge.registration.models import (
    AppServiceRegistration,
    Namespaces,
    RegexPattern,
    generate_token,
)

logger = logging.getLogger(__name__)


def generate_registration(url: Optional[str] = None) -> AppServiceRegistration:
    """Return a fresh registration with new random tokens.

    The bridge claims every user and alias under the ``_discord_`` prefix
    exclusively, is not rate limited and advertises the ``discord``
    third-party protocol.  Nothing is cached: each call draws new tokens.
    """
    registration = AppServiceRegistration(
        id=generate_token(),
        url=url,
        hs_token=generate_token(),
        as_token=generate_token(),
        sender_localpart=SENDER_LOCALPART,
        namespaces=Namespaces(
            users=[RegexPattern(regex=USER_NAMESPACE_REGEX, exclusive=True)],
            aliases=[RegexPattern(regex=ALIAS_NAMESPACE_REGEX, exclusive=True)],
        ),
        rate_limited=False,
        protocols=[PROTOCOL_NAME],
    )
    logger.debug("Generated registration id=%s", registration.id)
    return registration
