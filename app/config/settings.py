"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = Path("/run/secrets") / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                print(f"[settings] Loaded {secret_name} from /run/secrets")
                return secret_value
        except OSError as e:
            print(f"[settings] Failed to read /run/secrets/{secret_name}: {e}")

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            return secret_value

    return None


def _env_bool(var_name: str, default: bool) -> bool:
    value = os.environ.get(var_name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(var_name: str, default: int) -> int:
    value = os.environ.get(var_name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise RuntimeError(f"Environment variable {var_name} must be an integer (got {value!r}).")


@dataclass
class AppConfig:
    """Application configuration container."""
    # Mode
    demo_mode: bool

    # Flask
    secret_key: str
    secret_key_fallbacks: list[str] = field(default_factory=list)
    session_cookie_secure: bool = True
    session_type: str = "filesystem"
    session_dir: str = ""
    session_lifetime_hours: int = 8
    session_refresh_leeway: int = 60

    # Persistence
    database_url: str = "sqlite:///admin_starter.db"
    database_echo: bool = False

    # Keycloak / OIDC
    keycloak_url: str = ""
    keycloak_realm: str = "demo"
    keycloak_issuer: str = ""
    oidc_client_id: str = "admin-starter"
    oidc_client_secret: str = ""
    keycloak_service_client_id: str = "automation-cli"
    keycloak_service_client_secret: str = ""

    # Password reset links
    site_url: str = "http://localhost:5000"
    password_reset_path: str = "/auth/reset-password/confirm"
    password_reset_max_age: int = 3600

    # RBAC
    superuser_role_name: str = "administrator"
    stale_session_grace_ms: int = 3000

    # Email
    email_from: str = "noreply@example.com"
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"

    @property
    def keycloak_server_url(self) -> str:
        """Realm base URL used for OIDC endpoints (token, userinfo, certs)."""
        return f"{self.keycloak_url.rstrip('/')}/realms/{self.keycloak_realm}"

    @property
    def email_enabled(self) -> bool:
        """SMTP delivery is configured; otherwise emails are only logged."""
        return bool(self.smtp_host)

    @property
    def service_client_secret_resolved(self) -> str:
        """Get Keycloak service account client secret with demo fallback.

        Raises:
            ValueError: If secret not found in production mode
        """
        if self.keycloak_service_client_secret:
            return self.keycloak_service_client_secret
        if self.demo_mode:
            return "demo-service-secret"
        raise ValueError(
            "KEYCLOAK_SERVICE_CLIENT_SECRET not found. "
            "Set DEMO_MODE=true or provide secret via Docker secrets or environment variable."
        )


def _get_or_generate(var_name: str, demo_default: Optional[str] = None, required: bool = True, demo_mode: bool = False) -> str:
    """Get environment variable or use demo default."""
    value = os.environ.get(var_name)
    if value:
        return value

    if demo_mode and demo_default is not None:
        print(f"[demo-mode] Using default for {var_name}")
        os.environ[var_name] = demo_default
        return demo_default

    if not required:
        return ""

    raise RuntimeError(f"Environment variable {var_name} is required in production mode.")


def load_settings() -> AppConfig:
    """Load application settings from environment and /run/secrets."""
    demo_mode = _env_bool("DEMO_MODE", False)

    # ─────────────────────────────────────────────────────────────────────────
    # Secrets: /run/secrets first, environment second
    # ─────────────────────────────────────────────────────────────────────────
    secret_key = _load_secret_from_file("flask_secret_key", "FLASK_SECRET_KEY")
    if not secret_key:
        if not demo_mode:
            raise RuntimeError("FLASK_SECRET_KEY not found in /run/secrets or environment")
        secret_key = secrets.token_urlsafe(48)
        os.environ["FLASK_SECRET_KEY"] = secret_key
        print("[demo-mode] Generated temporary FLASK_SECRET_KEY")

    secret_key_fallbacks = [
        key.strip()
        for key in os.environ.get("FLASK_SECRET_KEY_FALLBACKS", "").split(",")
        if key.strip()
    ]

    keycloak_service_client_secret = _load_secret_from_file(
        "keycloak_service_client_secret",
        "KEYCLOAK_SERVICE_CLIENT_SECRET",
    ) or ""
    oidc_client_secret = _load_secret_from_file("oidc_client_secret", "OIDC_CLIENT_SECRET") or ""
    smtp_password = _load_secret_from_file("smtp_password", "SMTP_PASSWORD") or ""

    # ─────────────────────────────────────────────────────────────────────────
    # Flask session
    # ─────────────────────────────────────────────────────────────────────────
    session_cookie_secure = _env_bool("FLASK_SESSION_COOKIE_SECURE", True)
    session_type = os.environ.get("FLASK_SESSION_TYPE", "filesystem").strip().lower()
    session_dir = os.environ.get("FLASK_SESSION_DIR", "")

    # ─────────────────────────────────────────────────────────────────────────
    # Keycloak
    # ─────────────────────────────────────────────────────────────────────────
    keycloak_url = _get_or_generate(
        "KEYCLOAK_URL",
        demo_default="http://127.0.0.1:8080",
        demo_mode=demo_mode,
    )
    keycloak_realm = os.environ.get("KEYCLOAK_REALM", "demo")
    keycloak_issuer = os.environ.get(
        "KEYCLOAK_ISSUER",
        f"{keycloak_url.rstrip('/')}/realms/{keycloak_realm}",
    )
    oidc_client_id = _get_or_generate("OIDC_CLIENT_ID", demo_default="admin-starter", demo_mode=demo_mode)
    keycloak_service_client_id = _get_or_generate(
        "KEYCLOAK_SERVICE_CLIENT_ID",
        demo_default="automation-cli",
        demo_mode=demo_mode,
    )

    # ─────────────────────────────────────────────────────────────────────────
    # Application
    # ─────────────────────────────────────────────────────────────────────────
    database_url = os.environ.get("DATABASE_URL", "sqlite:///admin_starter.db")
    site_url = _get_or_generate("SITE_URL", demo_default="http://localhost:5000", demo_mode=demo_mode)
    superuser_role_name = os.environ.get("SUPERUSER_ROLE_NAME", "administrator").strip()

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    print(f"[settings] Mode={mode_label}; realm={keycloak_realm}; client_id={oidc_client_id}")

    if demo_mode:
        print("[settings] WARNING: Demo defaults in use. Do not deploy with these defaults.")

    return AppConfig(
        demo_mode=demo_mode,
        secret_key=secret_key,
        secret_key_fallbacks=secret_key_fallbacks,
        session_cookie_secure=session_cookie_secure,
        session_type=session_type,
        session_dir=session_dir,
        session_lifetime_hours=_env_int("SESSION_LIFETIME_HOURS", 8),
        session_refresh_leeway=_env_int("SESSION_REFRESH_LEEWAY", 60),
        database_url=database_url,
        database_echo=_env_bool("DATABASE_ECHO", False),
        keycloak_url=keycloak_url,
        keycloak_realm=keycloak_realm,
        keycloak_issuer=keycloak_issuer,
        oidc_client_id=oidc_client_id,
        oidc_client_secret=oidc_client_secret,
        keycloak_service_client_id=keycloak_service_client_id,
        keycloak_service_client_secret=keycloak_service_client_secret,
        site_url=site_url.rstrip("/"),
        password_reset_path=os.environ.get("PASSWORD_RESET_PATH", "/auth/reset-password/confirm"),
        password_reset_max_age=_env_int("PASSWORD_RESET_MAX_AGE", 3600),
        superuser_role_name=superuser_role_name,
        stale_session_grace_ms=_env_int("STALE_SESSION_GRACE_MS", 3000),
        email_from=os.environ.get("EMAIL_FROM", "noreply@example.com"),
        smtp_host=os.environ.get("SMTP_HOST", ""),
        smtp_port=_env_int("SMTP_PORT", 587),
        smtp_user=os.environ.get("SMTP_USER", ""),
        smtp_password=smtp_password,
        smtp_use_tls=_env_bool("SMTP_USE_TLS", True),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        log_format=os.environ.get("LOG_FORMAT", "text").lower(),
    )
