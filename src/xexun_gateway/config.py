from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    listen_host: str = "0.0.0.0"
    listen_port: int = 5024
    max_line_length: int = 1024
    log_level: str = "INFO"

    # Forced disconnect after connect, in milliseconds (0 = disabled)
    reset_delay: int = 0
    cancel_reset_on_position: bool = False

    # Device registry (empty URL = static table from `devices`)
    registry_url: str = ""
    registry_timeout: float = 2.0
    devices: dict[str, int] = {}

    recent_positions: int = 100

    model_config = {"env_prefix": "XEXUN_"}

    @property
    def registry_enabled(self) -> bool:
        return bool(self.registry_url)
