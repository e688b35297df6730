"""Utilities and constants for the signaling layer."""

import logging
from rich.console import Console
from rich.logging import RichHandler

# Rich Console for pretty printing
console = Console()

# Configure logging with RichHandler
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
)

# Get logger for the package
logger = logging.getLogger("jabsip")

# Feature advertised in disco#info by every session running this application
FEATURE_URI = "urn:jabsip:sip:0"

# Capability node published in our presence (XEP-0115)
CAPS_NODE = "https://jabsip.example.org/caps"

# Namespace of the SipInfo payload carried inside IQ stanzas
SIP_NAMESPACE = "urn:jabsip:sip:0"

# Roster group used for contacts added by the application
ROSTER_GROUP = "jabsip"

# Appended to account names that lack a domain part
DEFAULT_SUFFIX = "@jabber.org"

# Resource prefix, a random number 0..9999 is appended per session
RESOURCE_PREFIX = "jabsip"

DEFAULT_PORT = 5222

# Least intrusive presence: extended away with a priority below any real client
PRESENCE_SHOW = "xa"
PRESENCE_STATUS = "Automatic presence used for peer discovery"
PRESENCE_PRIORITY = -127

PING_INTERVAL = 60.0
CONNECT_DELAY = 1.0
REQUEST_TTL = 300.0

SOFTWARE_NAME = "jabsip"
SOFTWARE_VERSION = "0.1.0"
SOFTWARE_OS = ""

AUTO_REPLY = (
    "I'm sorry -- I'm just an automatic presence used for peer discovery. "
    "If you are getting this message, the person you are trying to reach is "
    "probably not signed on, so please try again later!"
)

# Human readable messages for transport disconnect reasons
DISCONNECT_MESSAGES = {
    "user": "User Interaction",
    "host_unknown": "Host is unknown",
    "item_not_found": "Item not found",
    "authorization_error": "Authorization Error",
    "remote_stream_error": "Remote Stream Error",
    "remote_connection_failed": "Remote Connection failed",
    "internal_server_error": "Internal Server Error",
    "system_shutdown": "System shutdown",
    "conflict": "Conflict",
    "unknown": "Unknown",
}
