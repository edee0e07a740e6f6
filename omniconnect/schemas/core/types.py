"""
Shared data types and enums for the messaging core.

These are the values that cross module boundaries: provider error kinds,
channel connection states, media kinds and realtime frame types.
"""

from enum import Enum


class AuthMode(str, Enum):
    """Where the provider secret token travels on a request."""

    TOKEN_IN_PATH = "token_in_path"
    TOKEN_IN_HEADER = "token_in_header"


class ProviderErrorKind(str, Enum):
    """Error taxonomy surfaced by the provider client."""

    MISSING_CREDENTIALS = "missing_credentials"
    INVALID_CREDENTIALS = "invalid_credentials"
    API_INCOMPATIBLE = "api_incompatible"
    AUTHENTICATION_FAILED = "authentication_failed"
    MULTIPLE_TRANSIENT_ERRORS = "multiple_transient_errors"  # Resolver only
    UNCLASSIFIED = "unclassified"


class FailureKind(str, Enum):
    """Outcome of a single hypothesis attempt that did not succeed."""

    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    INSTANCE_NOT_FOUND = "instance_not_found"
    AUTHENTICATION = "authentication"
    PROVIDER_ERROR = "provider_error"


class ConnectionState(str, Enum):
    """Connection state of a messaging channel."""

    UNKNOWN = "unknown"
    PENDING_SCAN = "pending_scan"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class SetupState(str, Enum):
    """Terminal states of the channel setup flow."""

    SUCCESS = "success"
    PENDING = "pending"
    ERROR = "error"


class MediaKind(str, Enum):
    """Media kinds recognized on inbound and outbound messages."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    STICKER = "sticker"
    PTT = "ptt"  # Push-to-talk voice note


class ClientFrameType(str, Enum):
    """Frames an agent socket may send to the hub."""

    AUTHENTICATE = "authenticate"
    PING = "ping"
    PONG = "pong"
    CONVERSATION_OPENED = "conversation_opened"
    CONVERSATION_CLOSED = "conversation_closed"
    TYPING_STATUS = "typing_status"
    NOTIFICATION = "notification"


class ServerFrameType(str, Enum):
    """Frames the hub sends to agent sockets."""

    WELCOME = "welcome"
    AUTHENTICATION_SUCCESS = "authentication_success"
    AUTHENTICATION_ERROR = "authentication_error"
    PING = "ping"
    PONG = "pong"
    NEW_MESSAGE = "new_message"
    USER_STATUS = "user_status"
    CONVERSATION_STATUS = "conversation_status"
    TYPING_STATUS = "typing_status"
    NOTIFICATION = "notification"
    CONNECTION_STATS = "connection_stats"
    ERROR = "error"
