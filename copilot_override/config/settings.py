"""Runtime settings."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_INSTRUCT_MODEL = "gpt-3.5-turbo-instruct"
CHAT_COMPLETIONS_PATH = "/chat/completions"
COMPLETIONS_PATH = "/completions"


@dataclass(slots=True, frozen=True)
class UpstreamTarget:
    """One upstream endpoint: where to POST and which credentials to send."""

    base: str
    api_key: str
    organization: str
    project: str
    path: str

    @property
    def url(self) -> str:
        return f"{self.base.rstrip('/')}{self.path}"


class Settings(BaseSettings):
    # 环境变量 OVERRIDE_<FIELD> 优先于 config.json 中的同名字段
    model_config = SettingsConfigDict(env_prefix="OVERRIDE_", extra="ignore", frozen=True)

    bind: str = "127.0.0.1:8181"
    proxy_url: str = ""
    # 秒；<= 0 表示不设超时
    timeout: int = 600

    codex_api_base: str = "https://api.openai.com/v1"
    codex_api_key: str = ""
    codex_api_organization: str = ""
    codex_api_project: str = ""
    codex_max_tokens: int = 500
    code_instruct_model: str = DEFAULT_INSTRUCT_MODEL

    chat_api_base: str = "https://api.openai.com/v1"
    chat_api_key: str = ""
    chat_api_organization: str = ""
    chat_api_project: str = ""
    chat_max_tokens: int = 4096
    chat_model_default: str = "gpt-4o"
    chat_model_map: dict[str, str] = Field(default_factory=dict)
    chat_locale: str = ""

    auth_token: str = ""

    log_level: str = "info"
    upstream_http2: bool = True
    upstream_max_connections: int = 100
    upstream_max_keepalive_connections: int = 20

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # init kwargs carry the config file; env overrides them.
        return env_settings, init_settings

    def chat_target(self) -> UpstreamTarget:
        return UpstreamTarget(
            base=self.chat_api_base,
            api_key=self.chat_api_key,
            organization=self.chat_api_organization,
            project=self.chat_api_project,
            path=CHAT_COMPLETIONS_PATH,
        )

    def codex_target(self) -> UpstreamTarget:
        return UpstreamTarget(
            base=self.codex_api_base,
            api_key=self.codex_api_key,
            organization=self.codex_api_organization,
            project=self.codex_api_project,
            path=COMPLETIONS_PATH,
        )


# Fields persisted in the config file; ambient knobs stay env-only.
CONFIG_FILE_FIELDS: tuple[str, ...] = (
    "bind",
    "proxy_url",
    "timeout",
    "codex_api_base",
    "codex_api_key",
    "codex_api_organization",
    "codex_api_project",
    "codex_max_tokens",
    "code_instruct_model",
    "chat_api_base",
    "chat_api_key",
    "chat_api_organization",
    "chat_api_project",
    "chat_max_tokens",
    "chat_model_default",
    "chat_model_map",
    "chat_locale",
    "auth_token",
)


class LogSettings(BaseSettings):
    """Logging knobs; env-only so the logger exists before any config file is parsed."""

    model_config = SettingsConfigDict(env_prefix="OVERRIDE_", extra="ignore")

    log_level: str = "info"
    log_dir: str = "logs"
