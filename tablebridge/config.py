"""Configuration system for TableBridge.

Supports loading from YAML files, dicts, the process environment, or
programmatic construction via Pydantic models. A config is built once at
startup and handed to the bridge; every model is frozen so handlers can
share it without copying.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Literal
from urllib.parse import quote

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ProviderConfig(_Frozen):
    """Telephony side: where Twilio reaches us."""

    listen_host: str = "0.0.0.0"
    listen_port: int = 3000
    listen_path: str = "/twilio-stream"
    # Overrides the request Host header when building the stream URL
    public_base_url: str = ""


class AgentConfig(_Frozen):
    """Agent side: the speech-to-speech endpoint."""

    url: str = "wss://api.openai.com/v1/realtime"
    model: str = "gpt-4o-realtime-preview"
    api_key: str = ""
    beta_header: str = "realtime=v1"
    voice: str = "verse"
    input_sample_rate: int = 24000
    output_sample_rate: int = 24000
    turn_detection: Literal["none", "server_vad"] = "none"
    # 200 ms of 8 kHz mu-law caller audio
    commit_threshold_bytes: int = Field(default=1600, gt=0)

    @property
    def ws_url(self) -> str:
        sep = "&" if "?" in self.url else "?"
        return f"{self.url}{sep}model={quote(self.model, safe='')}"

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self.beta_header:
            headers["OpenAI-Beta"] = self.beta_header
        return headers

    @property
    def server_vad(self) -> bool:
        return self.turn_detection == "server_vad"


class AudioConfig(_Frozen):
    """Telephony audio format. Twilio Media Streams carry 8 kHz mu-law only."""

    sample_rate: Literal[8000] = 8000


class RestaurantConfig(_Frozen):
    """Persona facts the agent is allowed to state."""

    name: str = "Sip & Sizzle"
    city: str = "Fort Myers, FL"
    address: str = "2236 First Street, Fort Myers FL 33901"
    hours: str = (
        "We are open every day at 10 a.m. for breakfast and lunch, "
        "and from 4 p.m. to 10 p.m. for dinner."
    )
    happy_hour: str = (
        "Happy Hour is 3 to 5 p.m. with five-dollar appetizers "
        "and ten-dollar craft cocktails."
    )
    parking: str = (
        "Street parking is free after 5pm across downtown; two parking garages "
        "are within a block with plenty of parking."
    )
    # Full overrides for the generated scripts
    greeting: str = ""
    instructions: str = ""


class LinksConfig(_Frozen):
    """Links the agent can text to the caller. Empty means not offered."""

    day_menu: str = ""
    dinner_menu: str = ""
    beverage_menu: str = ""
    reservations: str = ""
    ordering: str = ""


class TwilioConfig(_Frozen):
    """Credentials for SMS delivery and call lookups."""

    account_sid: str = ""
    auth_token: str = ""
    from_number: str = ""
    messaging_service_sid: str = ""
    sms_suffix: str = " Reply STOP to opt out. HELP for help. Msg&data rates may apply."


class MenuConfig(_Frozen):
    """Menu search tuning."""

    result_limit: int = 8
    spoken_limit: int = 5


class LoggingConfig(_Frozen):
    """Logging configuration."""

    level: str = "INFO"


class BridgeConfig(_Frozen):
    """Top-level TableBridge configuration.

    Examples:
        # Programmatic
        config = BridgeConfig(agent=AgentConfig(api_key="sk-..."))

        # From YAML
        config = BridgeConfig.from_yaml("tablebridge.yaml")

        # Shorthand
        config = BridgeConfig.from_dict({
            "listen_port": 3000,
            "openai_api_key": "sk-...",
            "day_menu_link": "https://example.com/day.pdf",
        })

        # From the environment (and .env)
        config = BridgeConfig.from_env()
    """

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)
    restaurant: RestaurantConfig = Field(default_factory=RestaurantConfig)
    links: LinksConfig = Field(default_factory=LinksConfig)
    twilio: TwilioConfig = Field(default_factory=TwilioConfig)
    menu: MenuConfig = Field(default_factory=MenuConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def menu_sources(self) -> list[tuple[str, str]]:
        """(source tag, url) for each configured menu PDF."""
        sources = [
            ("Day", self.links.day_menu),
            ("Dinner", self.links.dinner_menu),
            ("Beverage", self.links.beverage_menu),
        ]
        return [(tag, url) for tag, url in sources if url]

    @classmethod
    def from_yaml(cls, path: str | Path) -> BridgeConfig:
        """Load configuration from a YAML file.

        ``${VAR}`` references in string values are replaced from the
        environment; unset variables become empty strings.
        """
        path = Path(path)
        data = yaml.safe_load(path.read_text()) or {}
        return cls._from_raw(expand_env(data))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BridgeConfig:
        """Load configuration from a dictionary.

        Supports both the full nested format and a flat shorthand format:

        Full format:
            {"agent": {"api_key": "..."}, "links": {"day_menu": "..."}}

        Shorthand format:
            {"openai_api_key": "...", "day_menu_link": "..."}
        """
        return cls._from_raw(dict(data))

    @classmethod
    def from_env(cls, env_file: str | Path | None = ".env") -> BridgeConfig:
        """Load configuration from environment variables (and an optional .env file)."""
        env = EnvSettings(_env_file=env_file)
        return cls._from_raw(env.to_flat())

    @classmethod
    def _from_raw(cls, data: dict[str, Any]) -> BridgeConfig:
        """Normalize and construct config from a raw dict."""
        data = {k: (dict(v) if isinstance(v, dict) else v) for k, v in data.items()}

        for flat_key, (section, nested_key) in FLAT_MAPPINGS.items():
            if flat_key in data:
                data.setdefault(section, {})
                data[section][nested_key] = data.pop(flat_key)

        return cls(**data)


_ENV_REF_RE = re.compile(r"\$\{(\w+)\}")


def expand_env(value: Any) -> Any:
    """Replace ${VAR} references in every string of a parsed YAML tree."""
    if isinstance(value, str):
        return _ENV_REF_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env(v) for v in value]
    return value


# Flat shorthand keys -> (section, field)
FLAT_MAPPINGS: dict[str, tuple[str, str]] = {
    "listen_host": ("provider", "listen_host"),
    "listen_port": ("provider", "listen_port"),
    "listen_path": ("provider", "listen_path"),
    "public_base_url": ("provider", "public_base_url"),
    "agent_url": ("agent", "url"),
    "openai_api_key": ("agent", "api_key"),
    "realtime_model": ("agent", "model"),
    "realtime_voice": ("agent", "voice"),
    "turn_detection": ("agent", "turn_detection"),
    "restaurant_name": ("restaurant", "name"),
    "restaurant_city": ("restaurant", "city"),
    "restaurant_address": ("restaurant", "address"),
    "restaurant_parking": ("restaurant", "parking"),
    "day_menu_link": ("links", "day_menu"),
    "dinner_menu_link": ("links", "dinner_menu"),
    "beverage_menu_link": ("links", "beverage_menu"),
    "reservations_link": ("links", "reservations"),
    "ordering_link": ("links", "ordering"),
    "twilio_account_sid": ("twilio", "account_sid"),
    "twilio_auth_token": ("twilio", "auth_token"),
    "twilio_number": ("twilio", "from_number"),
    "messaging_service_sid": ("twilio", "messaging_service_sid"),
    "log_level": ("logging", "level"),
}


class EnvSettings(BaseSettings):
    """Environment variables understood by :meth:`BridgeConfig.from_env`.

    Unset variables fall back to the BridgeConfig defaults.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    openai_api_key: str | None = None
    openai_realtime_model: str | None = None
    openai_realtime_voice: str | None = None
    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_number: str | None = None
    messaging_service_sid: str | None = None
    restaurant_name: str | None = None
    restaurant_city: str | None = None
    restaurant_address: str | None = None
    restaurant_parking: str | None = None
    open_table_link: str | None = None
    toast_order_link: str | None = None
    day_menu_link: str | None = None
    dinner_menu_link: str | None = None
    beverage_menu_link: str | None = None
    public_base_url: str | None = None
    port: int | None = None
    log_level: str | None = None

    def to_flat(self) -> dict[str, Any]:
        renamed = {
            "openai_realtime_model": "realtime_model",
            "openai_realtime_voice": "realtime_voice",
            "open_table_link": "reservations_link",
            "toast_order_link": "ordering_link",
            "port": "listen_port",
        }
        return {
            renamed.get(key, key): value
            for key, value in self.model_dump().items()
            if value is not None
        }


def load_config(source: str | Path | dict[str, Any] | BridgeConfig | None = None) -> BridgeConfig:
    """Load a BridgeConfig from any supported source.

    Args:
        source: A YAML file path (str/Path), a dict, an existing BridgeConfig,
            or None to read the environment.

    Returns:
        A BridgeConfig instance.
    """
    if source is None:
        return BridgeConfig.from_env()
    if isinstance(source, BridgeConfig):
        return source
    if isinstance(source, dict):
        return BridgeConfig.from_dict(source)
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        return BridgeConfig.from_yaml(path)
    raise TypeError(f"Cannot load config from {type(source)}")


# Default YAML template for `tablebridge init`
DEFAULT_CONFIG_YAML = """\
# TableBridge Configuration
# ${VAR} references are expanded from the environment.

provider:
  listen_host: 0.0.0.0
  listen_port: 3000
  listen_path: /twilio-stream
  public_base_url: ""     # e.g. https://example.ngrok.app (defaults to the Host header)

agent:
  url: wss://api.openai.com/v1/realtime
  model: gpt-4o-realtime-preview
  api_key: ${OPENAI_API_KEY}
  voice: verse
  input_sample_rate: 24000   # multiple of 8000
  output_sample_rate: 24000  # multiple of 8000
  turn_detection: none       # none | server_vad
  commit_threshold_bytes: 1600

restaurant:
  name: Sip & Sizzle
  city: Fort Myers, FL
  address: 2236 First Street, Fort Myers FL 33901

links:
  day_menu: ""
  dinner_menu: ""
  beverage_menu: ""
  reservations: ""
  ordering: ""

twilio:
  account_sid: ${TWILIO_ACCOUNT_SID}
  auth_token: ${TWILIO_AUTH_TOKEN}
  from_number: ""
  messaging_service_sid: ""

menu:
  result_limit: 8
  spoken_limit: 5

logging:
  level: INFO
"""
