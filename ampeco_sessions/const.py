CONF_BASE_URL = "base_url"
CONF_TOKEN = "token"
CONF_TIMEOUT = "timeout"

ENV_BASE_URL = "AMPECO_BASE_URL"
ENV_TOKEN = "AMPECO_PARTNER_TOKEN"
ENV_TIMEOUT = "AMPECO_API_TIMEOUT"
ENV_HOST = "AMPECO_HOST"
ENV_PORT = "AMPECO_PORT"

DEFAULT_BASE_URL = "https://cp.ikrautas.lt"
DEFAULT_API_TIMEOUT = 30
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080

# Request body keys
REQ_STARTED_AFTER = "startedAfter"
REQ_STARTED_BEFORE = "startedBefore"
REQ_ENDED_AFTER = "endedAfter"
REQ_ENDED_BEFORE = "endedBefore"
REQ_TARIFF_SNAPSHOT_ID = "tariffSnapshotId"
REQ_PER_PAGE = "per_page"
REQ_MAX_PAGES = "maxPages"

MAX_PER_PAGE = 100
DEFAULT_MAX_PAGES = 10000

USER_CONCURRENCY = 8
ID_TAG_CONCURRENCY = 8
CP_EVSE_CONCURRENCY = 6

RESOURCES_PATH = "/public-api/resources"
SESSIONS_PATH = f"{RESOURCES_PATH}/sessions/v1.0"
CHARGE_POINTS_PATH = f"{RESOURCES_PATH}/charge-points/v1.0"
LOCATIONS_PATH = f"{RESOURCES_PATH}/locations/v1.0"
USERS_PATH = f"{RESOURCES_PATH}/users/v1.0"
ID_TAGS_PATH = f"{RESOURCES_PATH}/id-tags/v2.0"
EVSES_PATH = f"{RESOURCES_PATH}/evses/v2.0"

STAGE_SESSIONS = "sessions"
STAGE_CHARGE_POINTS = "charge-points"
STAGE_LOCATIONS = "locations"
STAGE_CP_EVSES = "charge-point-evses"
STAGE_EVSES = "evses"

REPORT_ROUTE = "/api/ampecosessions"
