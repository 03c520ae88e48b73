import json
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

logger = logging.getLogger(__name__)

load_dotenv()


SYSTEM_INSTRUCTION = """\
You are a compassionate and supportive AI assistant for students. Your purpose is to provide guidance and a safe space for students dealing with feelings of anxiety and depression.

Your core principles are:
1.  **Empathy and Non-Judgment**: Always respond with kindness, understanding, and empathy. Never judge or dismiss a student's feelings. Validate their emotions.
2.  **Supportive Guidance**: Offer gentle, constructive advice and coping strategies, such as breathing exercises, breaking tasks into smaller steps, or journaling.
3.  **Active Listening**: Pay close attention to what the student is saying. Ask clarifying questions to understand their situation better.
4.  **Resourceful**: When appropriate, suggest reaching out to a school counselor, a trusted teacher, or a mental health professional.
5.  **Not a Replacement for Professional Help**: Gently remind users that you are an AI assistant and not a substitute for a licensed therapist, especially if the conversation turns serious.
6.  **Calm and Hopeful Tone**: Use plain, non-clinical language that is encouraging and hopeful.
7.  **Keep Responses Concise**: Provide clear, easy-to-digest answers. Avoid long or complex responses that might feel overwhelming.
"""


class LLMConfig(BaseModel):
    gemini_api_key: str = ""
    default_model: str = "gemini-2.5-flash"
    system_instruction: str = SYSTEM_INSTRUCTION


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8787
    cors_origins: list[str] = ["http://localhost:5173"]  # ["*"] allows any origin


class DatabaseConfig(BaseModel):
    mongodb_uri: str = ""  # Empty disables durable persistence
    mongodb_db: str = ""


class ClientConfig(BaseModel):
    use_remote_api: bool = False
    api_base_url: str = ""
    storage_dir: str = ""  # Defaults to <config dir>/storage
    context_cache_size: int = 32
    request_timeout: float = 60.0


class AppConfig(BaseModel):
    llm: LLMConfig = LLMConfig()
    server: ServerConfig = ServerConfig()
    db: DatabaseConfig = DatabaseConfig()
    client: ClientConfig = ClientConfig()


_config_dir = Path(os.environ.get("SUPPORTCHAT_CONFIG_DIR", Path.home() / ".supportchat"))
_config_file = _config_dir / "config.json"


def _ensure_config_dir() -> None:
    _config_dir.mkdir(parents=True, exist_ok=True)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_origins(value: str) -> list[str]:
    if value.strip() == "*":
        return ["*"]
    return [s.strip() for s in value.split(",") if s.strip()]


def _apply_env_overrides(config: AppConfig) -> AppConfig:
    """Environment variables win over config.json."""
    env = os.environ
    if env.get("GEMINI_API_KEY"):
        config.llm.gemini_api_key = env["GEMINI_API_KEY"]
    if env.get("GEMINI_MODEL"):
        config.llm.default_model = env["GEMINI_MODEL"]
    if env.get("PORT"):
        try:
            config.server.port = int(env["PORT"])
        except ValueError:
            logger.warning("Ignoring invalid PORT value: %s", env["PORT"])
    if env.get("CORS_ORIGIN"):
        config.server.cors_origins = _parse_origins(env["CORS_ORIGIN"])
    if env.get("MONGODB_URI"):
        config.db.mongodb_uri = env["MONGODB_URI"]
    if env.get("MONGODB_DB"):
        config.db.mongodb_db = env["MONGODB_DB"]
    if env.get("USE_REMOTE_API"):
        config.client.use_remote_api = _parse_bool(env["USE_REMOTE_API"])
    if env.get("API_BASE_URL"):
        config.client.api_base_url = env["API_BASE_URL"].rstrip("/")
    return config


def load_config() -> AppConfig:
    config = AppConfig()
    if _config_file.exists():
        try:
            data = json.loads(_config_file.read_text(encoding="utf-8"))
            config = AppConfig(**data)
        except (json.JSONDecodeError, OSError, ValueError) as e:
            logger.error("Failed to load %s: %s", _config_file, e)
    return _apply_env_overrides(config)


def save_config(config: AppConfig) -> None:
    _ensure_config_dir()
    _config_file.write_text(
        json.dumps(config.model_dump(), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def storage_dir(config: AppConfig) -> Path:
    if config.client.storage_dir:
        return Path(config.client.storage_dir).expanduser()
    return _config_dir / "storage"
