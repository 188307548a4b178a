import os

from dotenv import load_dotenv

load_dotenv()

ENVIRONMENTS = ("development", "staging", "production")
DEFAULT_ENVIRONMENT = "production"
DEFAULT_REQUEST_TIMEOUT = 30.0


class ConfigError(Exception):
    """Required client configuration is missing or invalid."""


def current_environment() -> str:
    env = os.getenv("BUDGY_ENV", DEFAULT_ENVIRONMENT).strip().lower()
    if env not in ENVIRONMENTS:
        raise ConfigError(f"Unknown BUDGY_ENV {env!r}; expected one of {', '.join(ENVIRONMENTS)}")
    return env


def resolve_backend_url(env: str | None = None) -> str:
    """Base URL of the relay API (ending in /api).

    ``BUDGY_BACKEND_URL`` overrides everything; otherwise the URL comes from
    ``BUDGY_BACKEND_URL_<ENV>`` for the selected environment. There is no
    built-in fallback endpoint.
    """
    override = os.getenv("BUDGY_BACKEND_URL")
    if override and override.strip():
        url = override.strip()
    else:
        env = env or current_environment()
        url = os.getenv(f"BUDGY_BACKEND_URL_{env.upper()}", "").strip()
        if not url:
            raise ConfigError(f"No backend URL configured for {env} (set BUDGY_BACKEND_URL_{env.upper()})")
    if not url.startswith(("http://", "https://")):
        raise ConfigError(f"Invalid backend URL: {url}")
    return url.rstrip("/")


def request_timeout() -> float:
    return float(os.getenv("BUDGY_REQUEST_TIMEOUT", str(DEFAULT_REQUEST_TIMEOUT)))
