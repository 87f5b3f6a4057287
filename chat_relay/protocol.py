import json
from enum import Enum
from typing import Any, Dict, List, Optional


class MessageType(str, Enum):
    USERS = "users"
    REGISTER = "register"
    MESSAGE = "message"


# Envelope keys: messageType, dataArray, data
_MESSAGE_TYPES = {t.value for t in MessageType}


def build_envelope(
    msg_type: MessageType | str,
    data: Optional[str] = None,
    data_array: Optional[List[str]] = None,
) -> Dict[str, Any]:
    return {
        "messageType": MessageType(msg_type).value,
        "dataArray": list(data_array) if data_array is not None else None,
        "data": data,
    }


def encode_envelope(envelope: Dict[str, Any]) -> str:
    return json.dumps(envelope, separators=(",", ":"), ensure_ascii=False)


def _is_text(value: Any) -> bool:
    # Lone surrogates survive json.loads but cannot be sent as UTF-8
    if not isinstance(value, str):
        return False
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def _loads(raw: str) -> Any:
    try:
        return json.loads(raw)
    except (ValueError, TypeError, RecursionError):
        return None


def parse_envelope(raw: str) -> Dict[str, Any] | None:
    """Decode one text frame; None when it is not a valid envelope."""
    obj = _loads(raw)
    if not isinstance(obj, dict):
        return None

    msg_type = obj.get("messageType")
    if not isinstance(msg_type, str) or msg_type not in _MESSAGE_TYPES:
        return None

    data = obj.get("data")
    if data is not None and not _is_text(data):
        return None

    data_array = obj.get("dataArray")
    if data_array is not None:
        if not isinstance(data_array, list):
            return None
        if not all(_is_text(item) for item in data_array):
            return None

    return {
        "messageType": MessageType(msg_type),
        "dataArray": data_array,
        "data": data,
    }


def encode_chat_record(sender: str, text: str) -> str:
    return json.dumps({"from": sender, "message": text}, ensure_ascii=False)


def parse_chat_record(raw: str) -> Dict[str, str] | None:
    obj = _loads(raw)
    if not isinstance(obj, dict):
        return None
    sender = obj.get("from")
    text = obj.get("message")
    if not _is_text(sender) or not _is_text(text):
        return None
    return {"from": sender, "message": text}


def users_envelope(names: List[str]) -> Dict[str, Any]:
    return build_envelope(MessageType.USERS, data_array=names)


def chat_envelope(sender: str, text: str) -> Dict[str, Any]:
    return build_envelope(MessageType.MESSAGE, data=encode_chat_record(sender, text))
