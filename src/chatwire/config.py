"""Configuration loader: YAML file with environment variable fallbacks."""

from __future__ import annotations

import os
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_PROVIDER = "google"
DEFAULT_MODEL = "gemini-3-flash-preview"

_DEFAULT_SYSTEM_PROMPT = """\
You are a helpful assistant with access to tools. Use a tool when it gives a better answer than \
guessing, and treat tool outputs as real data. Be direct and concise."""

# OpenAI-compatible endpoints and the API-key variable each provider reads.
PROVIDERS: dict[str, tuple[str, str]] = {
    "openai": ("https://api.openai.com/v1", "OPENAI_API_KEY"),
    "deepseek": ("https://api.deepseek.com/v1", "DEEPSEEK_API_KEY"),
    "google": ("https://generativelanguage.googleapis.com/v1beta/openai/", "GOOGLE_API_KEY"),
}


@dataclass
class AIConfig:
    base_url: str
    api_key: str
    provider: str = DEFAULT_PROVIDER
    model: str = DEFAULT_MODEL
    temperature: float = 1.0
    system_prompt: str = _DEFAULT_SYSTEM_PROMPT
    verify_ssl: bool = True


@dataclass
class AppSettings:
    host: str = "127.0.0.1"
    port: int = 8080
    data_dir: Path = field(default_factory=lambda: Path.home() / ".chatwire")
    cors_origins: list[str] = field(default_factory=list)


@dataclass
class AgentSettings:
    approve_all_tools: bool = False
    max_tool_iterations: int = 50
    builtin_tools: bool = True


@dataclass
class ClientSettings:
    base_url: str = "http://127.0.0.1:8080/api/agent"
    stream_path: str = "/stream"

    @property
    def stream_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.stream_path}"

    @property
    def api_root(self) -> str:
        """Base of the REST API (the parent of the agent endpoints)."""
        base = self.base_url.rstrip("/")
        if base.endswith("/agent"):
            base = base[: -len("/agent")]
        return base


@dataclass
class AppConfig:
    ai: AIConfig
    app: AppSettings = field(default_factory=AppSettings)
    agent: AgentSettings = field(default_factory=AgentSettings)
    client: ClientSettings = field(default_factory=ClientSettings)


def _get_config_path(data_dir: Path | None = None) -> Path:
    if data_dir:
        return data_dir / "config.yaml"
    return Path.home() / ".chatwire" / "config.yaml"


def _as_bool(value: Any) -> bool:
    return str(value).lower() not in ("false", "0", "no", "")


def _split_origins(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    return [o.strip() for o in str(value or "").split(",") if o.strip()]


def resolve_provider(provider: str, base_url: str = "", api_key: str = "") -> tuple[str, str]:
    """Fill in base URL and API key from the provider table where not given."""
    default_url, key_var = PROVIDERS.get(provider, ("", ""))
    return base_url or default_url, api_key or (os.environ.get(key_var, "") if key_var else "")


def load_config(config_path: Path | None = None) -> AppConfig:
    raw: dict[str, Any] = {}
    path = config_path or _get_config_path()

    if path.exists():
        with open(path) as f:
            raw = yaml.safe_load(f) or {}

    ai_raw = raw.get("ai", {})
    provider = ai_raw.get("provider") or os.environ.get("AI_CHAT_PROVIDER", DEFAULT_PROVIDER)
    if provider not in PROVIDERS:
        raise ValueError(f"Unknown AI provider {provider!r}. Choose one of: {', '.join(sorted(PROVIDERS))}.")
    base_url, api_key = resolve_provider(
        provider,
        ai_raw.get("base_url") or os.environ.get("AI_CHAT_BASE_URL", ""),
        ai_raw.get("api_key") or os.environ.get("AI_CHAT_API_KEY", ""),
    )
    if not api_key:
        raise ValueError(
            f"AI api_key is required. Set 'ai.api_key' in config.yaml ({path}), AI_CHAT_API_KEY, "
            f"or {PROVIDERS[provider][1]} environment variable."
        )

    system_prompt = ai_raw.get("system_prompt") or os.environ.get("AI_CHAT_SYSTEM_PROMPT", "")
    ai = AIConfig(
        base_url=base_url,
        api_key=api_key,
        provider=provider,
        model=ai_raw.get("model") or os.environ.get("AI_CHAT_MODEL", DEFAULT_MODEL),
        temperature=float(ai_raw.get("temperature", 1.0)),
        system_prompt=system_prompt or _DEFAULT_SYSTEM_PROMPT,
        verify_ssl=_as_bool(ai_raw.get("verify_ssl", os.environ.get("AI_CHAT_VERIFY_SSL", "true"))),
    )

    app_raw = raw.get("app", {})
    app_settings = AppSettings(
        host=app_raw.get("host", "127.0.0.1"),
        port=int(app_raw.get("port", 8080)),
        data_dir=Path(os.path.expanduser(app_raw.get("data_dir", "~/.chatwire"))),
        cors_origins=_split_origins(app_raw.get("cors_origins") or os.environ.get("CORS_ALLOWED_ORIGINS", "")),
    )

    agent_raw = raw.get("agent", {})
    agent_settings = AgentSettings(
        approve_all_tools=_as_bool(agent_raw.get("approve_all_tools", False)),
        max_tool_iterations=int(agent_raw.get("max_tool_iterations", 50)),
        builtin_tools=_as_bool(agent_raw.get("builtin_tools", True)),
    )

    client_raw = raw.get("client", {})
    client_settings = ClientSettings(
        base_url=client_raw.get("base_url")
        or os.environ.get("CHATWIRE_API_BASE_URL", f"http://{app_settings.host}:{app_settings.port}/api/agent"),
        stream_path=client_raw.get("stream_path", "/stream"),
    )

    app_settings.data_dir.mkdir(parents=True, exist_ok=True)
    try:
        app_settings.data_dir.chmod(stat.S_IRWXU)  # 0700
        if path.exists():
            path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0600
    except OSError:
        pass  # May fail on Windows or non-owned files

    return AppConfig(ai=ai, app=app_settings, agent=agent_settings, client=client_settings)
