"""k1s0 error_reporter library."""

from .client import Client
from .config import ClientOptions, TransportOptions, load_options
from .default_client import get_default_client, set_default_client
from .dsn import Dsn, parse_dsn
from .encoding import decode_packet, packet_json, serialize_packet
from .exceptions import ErrorReporterError, ErrorReporterErrorCodes
from .interfaces import (
    ExceptionInterface,
    Http,
    Interface,
    Message,
    RawInterface,
    Stacktrace,
    StacktraceFrame,
    User,
    register_interface,
)
from .models import Packet, Severity, Tag
from .noop import NoOpTransport
from .pending import CaptureResult
from .transport import HttpTransport, Transport

__all__ = [
    "Client",
    "ClientOptions",
    "TransportOptions",
    "load_options",
    "get_default_client",
    "set_default_client",
    "Dsn",
    "parse_dsn",
    "packet_json",
    "serialize_packet",
    "decode_packet",
    "Packet",
    "Severity",
    "Tag",
    "Interface",
    "RawInterface",
    "Message",
    "ExceptionInterface",
    "Stacktrace",
    "StacktraceFrame",
    "User",
    "Http",
    "register_interface",
    "CaptureResult",
    "Transport",
    "HttpTransport",
    "NoOpTransport",
    "ErrorReporterError",
    "ErrorReporterErrorCodes",
]
