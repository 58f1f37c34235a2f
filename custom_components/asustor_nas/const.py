"""Constants for the ASUSTOR NAS integration."""

DOMAIN = "asustor_nas"
CONF_CLOUD_ID = "cloud_id"
CONF_USERNAME = "username"
CONF_PASSWORD = "password"

# Persisted connectivity state
CONF_URL = "url"
CONF_LAST_URL_CHECK = "last_url_check"
CONF_SESSION_ID = "sid"

DEFAULT_USERNAME = "admin"
MANUFACTURER = "ASUSTOR"

# EZ-Connect lookup service
EZCONNECT_URL_TEMPLATE = "https://{cloud_id}.ezconnect.to/"
EZCONNECT_API_RESULT_PATTERN = r"AS\.API\.apiResult\s*=\s*JSON\.parse\('([^']+)'"
EZCONNECT_ERRNO_INVALID_ID = 2

# DDNS candidate, derived from the cloud id alone
DDNS_URL_TEMPLATE = "http://{cloud_id}.myasustor.com:8000/"

# ADM endpoints (relative to a base address ending with "/")
PATH_PROBE = "portal/resources/images/favicon.ico"
PATH_LOGIN = "portal/apis/login.cgi"
PATH_ACTIVITY_MONITOR = "portal/apis/activityMonitor/act.cgi"
PATH_VOLUMES = "portal/apis/storageManager/volume.cgi"
PATH_SYSINFO = "portal/apis/information/sysinfo.cgi"

# ADM error codes
ERROR_CODE_AUTH_FAILED = 5000
ERROR_CODE_INVALID_CREDENTIALS = 5001
SESSION_INVALID_ERROR_CODES = frozenset({256, 5000, 5001, 5053})

# HTTP status signalling an ADM Defender block
HTTP_STATUS_OK = 200
HTTP_STATUS_FORBIDDEN = 403

# Timeout Settings (seconds)
LOOKUP_TIMEOUT = 7
REVALIDATE_PROBE_TIMEOUT = 3
RACE_PROBE_TIMEOUT = 5
LOGIN_TIMEOUT = 10
API_TIMEOUT = 7

# Full resolution is repeated at most this often while the cached address works
URL_REVALIDATION_INTERVAL = 600  # seconds

# Coordinator settings
COORDINATOR_UPDATE_INTERVAL = 10  # seconds - How often to poll NAS statistics

# Availability reasons
REASON_UNREACHABLE = "NAS is unreachable. Is it connected to the network?"
REASON_BLOCKED = (
    "Home Assistant is blocked by ADM Defender. "
    "Remove this system's IP address from the ADM Defender blocklist."
)
REASON_INVALID_CREDENTIALS = (
    "Invalid NAS username or password. Reconfigure the integration."
)

# Repair issue raised while the NAS blocks this system
ISSUE_ADM_DEFENDER_BLOCKED = "adm_defender_blocked"

# Version information
INTEGRATION_VERSION = "1.0.0"
