from core.errors import ValidationError

MAX_USER_TEXT_LENGTH = 2000


def validate_user_text(user_text) -> str:
    """
    Checks the incoming message before any session or upstream work happens.
    Returns the text unchanged; the length limit applies to the raw text.
    """
    if not isinstance(user_text, str) or not user_text.strip():
        raise ValidationError("userText is required")
    if len(user_text) > MAX_USER_TEXT_LENGTH:
        raise ValidationError(f"Message exceeds {MAX_USER_TEXT_LENGTH} character limit")
    return user_text


def validate_user_metadata(user_metadata) -> dict:
    if user_metadata is None:
        return {}
    if not isinstance(user_metadata, dict):
        raise ValidationError("userMetadata must be an object")
    return user_metadata
