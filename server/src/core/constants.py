"""
Shared constants and enums used across multiple layers.

Placing them here avoids circular imports between the store, the
services and the socket handlers.
"""

from enum import Enum


class Collection(str, Enum):
    """Document store collections."""
    USERS = "users"
    PROTOTYPES = "prototypes"
    CHARACTERS = "characters"


# Discriminator of the character prototype in the prototypes collection
CHARACTER_PROTOTYPE_TYPE = "character"

# Keys the store manages on a prototype document; never merged into characters
PROTOTYPE_STORE_KEYS = ("_id", "type")
