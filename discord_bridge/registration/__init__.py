"""Application-service registration: model, generation and loading."""

from discord_bridge.registration.generator import generate_registration
from discord_bridge.registration.models import (
    AppServiceRegistration,
    Namespaces,
    RegexPattern,
    generate_token,
    load_registration,
)

__all__ = [
    "AppServiceRegistration",
    "Namespaces",
    "RegexPattern",
    "generate_registration",
    "generate_token",
    "load_registration",
]
