from agent_auth.app_config import AppConfig, Config

AA_BASE_URL = Config(env_name="AA_BASE_URL", is_required=False, default_value=None)
AA_CLIENT_ID = Config(env_name="AA_CLIENT_ID", is_required=False, default_value=None)
AA_CLIENT_SECRET = Config(env_name="AA_CLIENT_SECRET", is_required=False, default_value=None)
AA_REDIRECT_URI = Config(
    env_name="AA_REDIRECT_URI",
    is_required=False,
    default_value="http://localhost:3001/callback",
)
AA_SCOPES = Config(env_name="AA_SCOPES", is_required=False, default_value="openid")

AA_VALIDATE_ID_TOKEN = Config(
    env_name="AA_VALIDATE_ID_TOKEN", is_required=False, default_value="false"
)
AA_CLOCK_TOLERANCE = Config(env_name="AA_CLOCK_TOLERANCE", is_required=False, default_value="0")
AA_ENABLE_DISCOVERY = Config(
    env_name="AA_ENABLE_DISCOVERY", is_required=False, default_value="false"
)
AA_HTTP_TIMEOUT = Config(env_name="AA_HTTP_TIMEOUT", is_required=False, default_value="30")

# Abandoned authorization flows are evicted after this many seconds
AA_FLOW_STATE_TTL = Config(env_name="AA_FLOW_STATE_TTL", is_required=False, default_value="300")

AA_CREDENTIAL_STORE_MODULE = Config(
    env_name="AA_CREDENTIAL_STORE_MODULE", is_required=False, default_value=None
)
AA_CREDENTIAL_STORE_CLASS = Config(
    env_name="AA_CREDENTIAL_STORE_CLASS", is_required=False, default_value=None
)

AA_REDIS_HOST = Config(env_name="AA_REDIS_HOST", is_required=False, default_value=None)
AA_REDIS_PORT = Config(env_name="AA_REDIS_PORT", is_required=False, default_value=None)
AA_REDIS_DB = Config(env_name="AA_REDIS_DB", is_required=False, default_value=None)
AA_REDIS_TTL = Config(env_name="AA_REDIS_TTL", is_required=False, default_value=None)
AA_REDIS_SSL = Config(env_name="AA_REDIS_SSL", is_required=False, default_value="false")
AA_REDIS_PWD = Config(env_name="AA_REDIS_PWD", is_required=False, default_value=None)

CONFIGS = [
    AA_BASE_URL,
    AA_CLIENT_ID,
    AA_CLIENT_SECRET,
    AA_REDIRECT_URI,
    AA_SCOPES,
    AA_VALIDATE_ID_TOKEN,
    AA_CLOCK_TOLERANCE,
    AA_ENABLE_DISCOVERY,
    AA_HTTP_TIMEOUT,
    AA_FLOW_STATE_TTL,
    AA_CREDENTIAL_STORE_MODULE,
    AA_CREDENTIAL_STORE_CLASS,
    AA_REDIS_HOST,
    AA_REDIS_PORT,
    AA_REDIS_DB,
    AA_REDIS_TTL,
    AA_REDIS_SSL,
    AA_REDIS_PWD,
]

AppConfig.add_configs(CONFIGS)
