# socialbridge/core/config.py
import os, json
import logging
from dataclasses import dataclass, asdict

from socialbridge.model import DEFAULT_PORT, LoginOptions

DEFAULT_PATH = os.path.join(os.path.expanduser("~"), ".socialbridge.json")
DEFAULT_LOG = os.path.join(os.path.expanduser("~"), "socialbridge.log")

@dataclass
class Config:
    default_room: str = "#freedom"
    default_port: int = DEFAULT_PORT
    agent: str = "socialbridge"
    version: str = "0.1.0"
    url: str = "https://github.com/socialbridge/socialbridge"
    batch_delay: float = 0.1           # seconds of quiet before an outbound flush
    max_batch_window: float = 2.0      # oldest buffered message never waits longer
    log_file: str = DEFAULT_LOG
    log_level: str = "INFO"
    last_user_id: str | None = None
    last_host: str | None = None
    last_port: str | None = None

    @staticmethod
    def load(path: str = DEFAULT_PATH) -> "Config":
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except Exception:
            data = {}
        if not isinstance(data, dict):
            data = {}
        return Config(
            default_room=str(data.get("default_room", "#freedom")),
            default_port=int(data.get("default_port", DEFAULT_PORT)),
            agent=str(data.get("agent", "socialbridge")),
            version=str(data.get("version", "0.1.0")),
            url=str(data.get("url", Config.url)),
            batch_delay=float(data.get("batch_delay", 0.1)),
            max_batch_window=float(data.get("max_batch_window", 2.0)),
            log_file=str(data.get("log_file", DEFAULT_LOG)),
            log_level=str(data.get("log_level", "INFO")).upper(),
            last_user_id=data.get("last_user_id"),
            last_host=data.get("last_host"),
            last_port=data.get("last_port"),
        )

    def save(self, path: str = DEFAULT_PATH) -> None:
        data = asdict(self)
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def login_options(self, room: str | None = None) -> LoginOptions:
        return LoginOptions(agent=self.agent, version=self.version, url=self.url, room=room)

    def remember(self, user_id: str, host: str, port) -> None:
        self.last_user_id = user_id
        self.last_host = host
        self.last_port = str(port) if port not in (None, "") else None


def setup_logging(cfg: Config | None = None):
    """Configures application-wide logging."""
    cfg = cfg or Config()
    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
        filename=cfg.log_file,
        filemode='a'
    )
