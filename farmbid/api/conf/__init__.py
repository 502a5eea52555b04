from typing import Literal

from pydantic import BaseModel

from farmbid.auctions import AuctionSettings
from farmbid.utils import auth, env, log
from farmbid.utils.env import EnvVarSpec

logger = log.get_logger(__name__)


def _parse_bool(x: str) -> bool:
    return x.lower() == "true"


#### Types ####

class HttpServerConf(BaseModel):
    host: str
    port: int
    autoreload: bool

class SchedulerConf(BaseModel):
    enabled: bool
    promote_interval_seconds: int
    live_interval_seconds: int

StorageBackend = Literal["couchbase", "memory"]

#### Env Vars ####

## Logging ##

LOG_LEVEL = EnvVarSpec(id="LOG_LEVEL", default="INFO")

ENVIRONMENT = EnvVarSpec(id="ENVIRONMENT", default="development")

## HTTP ##

HTTP_HOST = EnvVarSpec(id="HTTP_HOST", default="0.0.0.0")

HTTP_PORT = EnvVarSpec(id="HTTP_PORT", default="8000", parse=int, type=(int, ...))

HTTP_AUTORELOAD = EnvVarSpec(
    id="HTTP_AUTORELOAD",
    parse=_parse_bool,
    default="false",
    type=(bool, ...),
)

HTTP_EXPOSE_ERRORS = EnvVarSpec(
    id="HTTP_EXPOSE_ERRORS",
    default="false",
    parse=_parse_bool,
    type=(bool, ...),
)

## Auth ##

AUTH_ENABLED = EnvVarSpec(id="AUTH_ENABLED", default="true", parse=_parse_bool, type=(bool, ...))

AUTH_OIDC_JWK_URL = EnvVarSpec(id="AUTH_OIDC_JWK_URL", is_optional=True)
AUTH_OIDC_AUDIENCE = EnvVarSpec(id="AUTH_OIDC_AUDIENCE", is_optional=True)
AUTH_OIDC_ISSUER = EnvVarSpec(id="AUTH_OIDC_ISSUER", is_optional=True)

## Storage ##

STORAGE_BACKEND = EnvVarSpec(
    id="STORAGE_BACKEND",
    default="couchbase",
    parse=lambda x: x.lower(),
    type=(StorageBackend, ...),
)

## Auctions ##

AUCTION_MIN_BID_INCREMENT = EnvVarSpec(
    id="AUCTION_MIN_BID_INCREMENT",
    default="1.0",
    parse=float,
    type=(float, ...),
)

AUCTION_ANTI_SNIPING_SECONDS = EnvVarSpec(
    id="AUCTION_ANTI_SNIPING_SECONDS",
    default="30",
    parse=int,
    type=(int, ...),
)

# 0 means no cap on anti-sniping extensions
AUCTION_MAX_EXTENSIONS = EnvVarSpec(
    id="AUCTION_MAX_EXTENSIONS",
    default="0",
    parse=int,
    type=(int, ...),
)

AUCTION_BID_MAX_RETRIES = EnvVarSpec(
    id="AUCTION_BID_MAX_RETRIES",
    default="5",
    parse=int,
    type=(int, ...),
)

AUCTION_MAX_CASCADE_STEPS = EnvVarSpec(
    id="AUCTION_MAX_CASCADE_STEPS",
    default="500",
    parse=int,
    type=(int, ...),
)

ESCROW_DEPOSIT_PERCENTAGE = EnvVarSpec(
    id="ESCROW_DEPOSIT_PERCENTAGE",
    default="10",
    parse=float,
    type=(float, ...),
)

## Scheduler ##

SCHEDULER_ENABLED = EnvVarSpec(id="SCHEDULER_ENABLED", default="true", parse=_parse_bool, type=(bool, ...))

SCHEDULER_PROMOTE_INTERVAL_SECONDS = EnvVarSpec(
    id="SCHEDULER_PROMOTE_INTERVAL_SECONDS",
    default="60",
    parse=int,
    type=(int, ...),
)

SCHEDULER_LIVE_INTERVAL_SECONDS = EnvVarSpec(
    id="SCHEDULER_LIVE_INTERVAL_SECONDS",
    default="30",
    parse=int,
    type=(int, ...),
)

#### Validation ####
VALIDATED_ENV_VARS = [
    LOG_LEVEL,
    ENVIRONMENT,
    HTTP_AUTORELOAD,
    HTTP_EXPOSE_ERRORS,
    HTTP_PORT,
    AUTH_ENABLED,
    STORAGE_BACKEND,
    AUCTION_MIN_BID_INCREMENT,
    AUCTION_ANTI_SNIPING_SECONDS,
    AUCTION_MAX_EXTENSIONS,
    AUCTION_BID_MAX_RETRIES,
    AUCTION_MAX_CASCADE_STEPS,
    ESCROW_DEPOSIT_PERCENTAGE,
    SCHEDULER_ENABLED,
    SCHEDULER_PROMOTE_INTERVAL_SECONDS,
    SCHEDULER_LIVE_INTERVAL_SECONDS,
    AUTH_OIDC_JWK_URL,
    AUTH_OIDC_AUDIENCE,
    AUTH_OIDC_ISSUER,
]

def validate() -> bool:
    return env.validate(VALIDATED_ENV_VARS)

#### Getters ####

def get_log_level() -> str:
    return env.parse(LOG_LEVEL)

def get_environment() -> str:
    return env.parse(ENVIRONMENT)

def get_http_expose_errors() -> bool:
    return env.parse(HTTP_EXPOSE_ERRORS)

def get_http_conf() -> HttpServerConf:
    return HttpServerConf(
        host=env.parse(HTTP_HOST),
        port=env.parse(HTTP_PORT),
        autoreload=env.parse(HTTP_AUTORELOAD),
    )

def get_auth_enabled() -> bool:
    return env.parse(AUTH_ENABLED)

def get_auth_config() -> auth.AuthClientConfig:
    """Get authentication configuration."""
    return auth.AuthClientConfig(
        jwk_url=env.parse(AUTH_OIDC_JWK_URL),
        audience=env.parse(AUTH_OIDC_AUDIENCE),
        issuer=env.parse(AUTH_OIDC_ISSUER),
    )

def get_storage_backend() -> StorageBackend:
    return env.parse(STORAGE_BACKEND)

def get_auction_settings() -> AuctionSettings:
    max_extensions = env.parse(AUCTION_MAX_EXTENSIONS)
    return AuctionSettings(
        min_bid_increment=env.parse(AUCTION_MIN_BID_INCREMENT),
        anti_sniping_buffer=env.parse(AUCTION_ANTI_SNIPING_SECONDS),
        escrow_deposit_percentage=env.parse(ESCROW_DEPOSIT_PERCENTAGE),
        max_extensions=max_extensions if max_extensions > 0 else None,
        bid_max_retries=max(0, env.parse(AUCTION_BID_MAX_RETRIES)),
        max_cascade_steps=max(1, env.parse(AUCTION_MAX_CASCADE_STEPS)),
    )

def get_scheduler_conf() -> SchedulerConf:
    return SchedulerConf(
        enabled=env.parse(SCHEDULER_ENABLED),
        promote_interval_seconds=max(1, env.parse(SCHEDULER_PROMOTE_INTERVAL_SECONDS)),
        live_interval_seconds=max(1, env.parse(SCHEDULER_LIVE_INTERVAL_SECONDS)),
    )
