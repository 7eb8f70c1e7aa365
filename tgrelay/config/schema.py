"""Configuration schema using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from tgrelay.utils.helpers import expand_path


class TelegramConfig(BaseModel):
    """Telegram bot configuration."""
    token: str = ""  # Bot token from @BotFather
    chat_id: str = ""  # The one chat allowed to talk to the agent
    allow_from: list[str] = Field(default_factory=list)  # Allowed user IDs or usernames (empty = anyone in the chat)
    proxy: str | None = None  # HTTP/SOCKS5 proxy URL, e.g. "http://127.0.0.1:7890"
    api_base: str = "https://api.telegram.org"
    http_timeout: float = 10.0
    media_timeout: float = 120.0


class PollingConfig(BaseModel):
    """Relay poller configuration."""
    interval_ms: int = 2000
    limit: int = 10
    command_prefix: str = "/"  # Messages starting with this are never relayed
    lock_path: str = "~/.tgrelay/poll.lock"
    lock_ttl_ms: int = 30000


class InjectConfig(BaseModel):
    """Terminal injection configuration."""
    backend: str = "auto"  # auto | tmux | windows
    tmux_commands: list[str] = Field(default_factory=lambda: ["claude", "node"])
    windows_processes: list[str] = Field(
        default_factory=lambda: ["WindowsTerminal", "cmd", "powershell", "Code"]
    )
    settle_ms: int = 500  # Pause after activation before the focus check
    timeout: float = 15.0  # Upper bound for one whole injection


class ApprovalConfig(BaseModel):
    """Remote approval configuration."""
    timeout_ms: int = 60000
    poll_interval_ms: int = 1000
    sensitive_tools: list[str] = Field(
        default_factory=lambda: ["Bash", "Edit", "Write", "NotebookEdit"]
    )
    affirmative: list[str] = Field(default_factory=lambda: ["是", "好", "可以"])
    negative: list[str] = Field(default_factory=lambda: ["否", "不", "拒绝"])
    fail_open: bool = False  # Approve instead of deny when the exchange itself breaks


class NotifyConfig(BaseModel):
    """Post-tool notification configuration."""
    notify_all: bool = False  # Only errors by default
    preview_chars: int = 100


class Config(BaseSettings):
    """Root configuration for tgrelay."""
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    inject: InjectConfig = Field(default_factory=InjectConfig)
    approval: ApprovalConfig = Field(default_factory=ApprovalConfig)
    notify: NotifyConfig = Field(default_factory=NotifyConfig)

    @property
    def is_configured(self) -> bool:
        """True when both the bot token and the target chat are set."""
        return bool(self.telegram.token.strip() and self.telegram.chat_id.strip())

    @property
    def lock_path(self) -> Path:
        """Get expanded poll lock path."""
        return expand_path(self.polling.lock_path)

    class Config:
        env_prefix = "TGRELAY_"
        env_nested_delimiter = "__"
