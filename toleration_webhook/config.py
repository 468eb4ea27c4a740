import os
from dataclasses import dataclass, field


def _get_env(name: str, default: str) -> str:
    val = os.getenv(name)
    return val if val is not None and val != "" else default


def _parse_int(name: str, default: int) -> int:
    val = _get_env(name, str(default))
    try:
        return int(val)
    except ValueError:
        return default


def parse_resource_names(values: list[str] | tuple[str, ...]) -> tuple[str, ...]:
    """Trim, drop empties and de-duplicate resource names, keeping first-seen order."""
    names: list[str] = []
    for value in values:
        name = value.strip()
        if name and name not in names:
            names.append(name)
    return tuple(names)


def _parse_resources(name: str) -> tuple[str, ...]:
    return parse_resource_names(_get_env(name, "").split(","))


@dataclass(frozen=True)
class Settings:
    # Server
    port: int = 8443
    tls_cert_file: str = "/etc/webhook/certs/cert.pem"
    tls_key_file: str = "/etc/webhook/certs/key.pem"
    log_level: str = "INFO"

    # Policy: extended resources whose pods must tolerate the matching taint
    target_resources: tuple[str, ...] = field(default_factory=tuple)


def load() -> Settings:
    return Settings(
        port=_parse_int("PORT", 8443),
        tls_cert_file=_get_env("TLS_CERT_FILE", "/etc/webhook/certs/cert.pem"),
        tls_key_file=_get_env("TLS_KEY_FILE", "/etc/webhook/certs/key.pem"),
        log_level=_get_env("LOG_LEVEL", "INFO").upper(),
        target_resources=_parse_resources("TARGET_RESOURCES"),
    )


# Singleton settings for app usage (optional in tests)
settings: Settings = load()
