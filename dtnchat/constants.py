# DTN chat protocol constants (daemon control strings, BPv7 numbers, SMS conventions)

# Endpoint schemes (CBOR scheme codes per BPv7)
SCHEME_DTN = "dtn"
SCHEME_IPN = "ipn"
SCHEME_CODE_DTN = 1
SCHEME_CODE_IPN = 2

# Well-known chat services
SMS_SERVICE_NAME = "sms"
SMS_SERVICE_NUMBER = 767

# Destinations containing this marker never request delivery notifications.
NO_NOTIFY_MARKER = "sms2"

# Bundle protocol
BP_VERSION = 7
PAYLOAD_BLOCK_TYPE = 1
PAYLOAD_BLOCK_NUMBER = 1

# Bundle processing control flags
BUNDLE_IS_FRAGMENT = 0x000001
BUNDLE_ADMINISTRATIVE_RECORD = 0x000002
BUNDLE_MUST_NOT_FRAGMENT = 0x000004
BUNDLE_APP_ACK_REQUEST = 0x000020
BUNDLE_STATUS_REQUEST_RECEPTION = 0x004000
BUNDLE_STATUS_REQUEST_FORWARD = 0x010000
BUNDLE_STATUS_REQUEST_DELIVERY = 0x020000
BUNDLE_STATUS_REQUEST_DELETION = 0x040000

# CRC types
CRC_NONE = 0
CRC_16 = 1
CRC_32 = 2

# Seconds between the unix epoch and the DTN epoch (2000-01-01T00:00:00Z)
DTN_EPOCH_OFFSET_S = 946684800

# Daemon WebSocket control channel
WS_PATH = "/ws"
CMD_MODE_BUNDLE = "/bundle"
CMD_MODE_DATA = "/data"
CMD_SUBSCRIBE = "/subscribe"
CMD_UNSUBSCRIBE = "/unsubscribe"

ACK_PREFIX = "200"
ACK_MODE_BUNDLE = "200 tx mode: bundle"
ACK_MODE_DATA = "200 tx mode: data"
ACK_SUBSCRIBED = "200 subscribed"

# Daemon REST endpoints
HTTP_NODE_ID = "/status/nodeid"
HTTP_REGISTER = "/register"
HTTP_UNREGISTER = "/unregister"

# /data mode envelope keys
D_SRC = "src"
D_DST = "dst"
D_BID = "bid"
D_DATA = "data"
D_LIFETIME = "lifetime"
D_DELIVERY_NOTIFICATION = "delivery_notification"

# SMS payload map keys (alternate encoding accepted on decode)
SMS_KEY_COMP = "comp"
SMS_KEY_DATA = "data"

# Defaults
DEFAULT_PORT = 3000
DEFAULT_HOST_V4 = "127.0.0.1"
DEFAULT_HOST_V6 = "::1"
DEFAULT_LIFETIME_S = 60 * 60
PORT_ENV_VAR = "DTN_WEB_PORT"

# Logger for daemon control traffic ([*] negotiated, [<] acks, [>] commands)
TRAFFIC_LOGGER = "dtnchat.traffic"
