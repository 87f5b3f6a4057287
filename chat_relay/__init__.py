from .hub import ANONYMOUS, BroadcastHub, Session, SessionState
from .protocol import (
    MessageType,
    build_envelope,
    chat_envelope,
    encode_chat_record,
    encode_envelope,
    parse_chat_record,
    parse_envelope,
    users_envelope,
)
from .registry import ChannelClosed, DeliveryChannel, SessionRegistry
