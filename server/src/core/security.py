import uuid


def create_session_key() -> str:
    """Creates a new session key: 32 lowercase hex characters."""
    return uuid.uuid4().hex
