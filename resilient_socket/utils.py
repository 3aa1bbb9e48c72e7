from typing import Any
import json
from loguru import logger


def serialize_message(message: Any) -> str:
    """Serialize an outbound payload to its wire text.

    Structured payloads (dict, list, tuple, None) become compact JSON, bytes are
    decoded as UTF-8 and every other value goes through ``str``.

    Args:
        message: Payload to serialize

    Returns:
        Serialized message string
    """
    if isinstance(message, str):
        return message

    if isinstance(message, (bytes, bytearray)):
        return bytes(message).decode('utf-8', errors='replace')

    if message is None or isinstance(message, (dict, list, tuple)):
        try:
            return json.dumps(message, ensure_ascii=False, separators=(',', ':'))
        except (TypeError, ValueError) as e:
            logger.warning(f"JSON serialization error: {e}")
            return str(message)

    return str(message)


def parse_message(message: Any) -> Any:
    """Parse a received message.

    Args:
        message: Raw message received from the transport

    Returns:
        Parsed message (dict, list or string)
    """
    if not message:
        return None

    if isinstance(message, (bytes, bytearray)):
        message = bytes(message).decode('utf-8', errors='replace')

    try:
        return json.loads(message)
    except json.JSONDecodeError:
        logger.trace("Message is not JSON format")
        return message
