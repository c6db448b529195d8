"""Constants for the Tuya Cloud integration."""

from datetime import timedelta

DOMAIN = "tuya_cloud"

CLIENT_ID = "HA_3y9q4ak7g4ephrvke"
SCHEMA = "haauthorize"

CONF_USER_CODE = "user_code"
CONF_PROTOCOL = "protocol"
CONF_REGION = "region"
CONF_REFRESH_POLICY = "refresh_policy"
CONF_POLL_INTERVAL = "poll_interval"
CONF_MIN_KELVIN = "min_kelvin"
CONF_MAX_KELVIN = "max_kelvin"

PROTOCOL_SHARING = "sharing"
PROTOCOL_SIGNED = "signed"

REFRESH_POLICY_SERVER = "server"
REFRESH_POLICY_LOCAL_EXTEND = "local_extend"

REGION_ENDPOINTS: dict[str, str] = {
    "US": "https://openapi.tuyaus.com",
    "EU": "https://openapi.tuyaeu.com",
    "CN": "https://openapi.tuyacn.com",
    "IN": "https://openapi.tuyain.com",
}
DEFAULT_REGION = "US"

LOGIN_HOST = "https://apigw.iotbing.com"
QR_TOKEN_PATH = "/v1.0/m/life/home-assistant/qrcode/tokens"
QR_CODE_PREFIX = "tuyaSmart--qrLogin?token="
QR_POLL_INTERVAL = 2.0
QR_LOGIN_TIMEOUT = 300.0

SIGNED_REQUEST_TIMEOUT = 10.0
SHARING_REQUEST_TIMEOUT = 30.0

TOKEN_SAFETY_MARGIN = timedelta(minutes=5)
TOKEN_REFRESH_LEAD = timedelta(minutes=10)
DEFAULT_TOKEN_LIFETIME = timedelta(hours=2)
LOCAL_EXTENSION = timedelta(hours=2)

DEFAULT_POLL_INTERVAL = timedelta(seconds=60)
MIN_POLL_INTERVAL = timedelta(seconds=10)

DEFAULT_MIN_KELVIN = 2700
DEFAULT_MAX_KELVIN = 6500
MIN_MIRED = 140
MAX_MIRED = 500
