from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()


class Settings(BaseSettings):
    app_env: str = "dev"
    database_url: str = "sqlite:///./aprobaciones.db"
    log_level: str = "INFO"

    # Reglas de negocio del gateway
    motivo_min_length: int = 10
    condition_mode: str = "todas"  # "todas" | "primera"
    admin_role: str = "admin"

    # Colaboradores y procesos periódicos
    action_timeout_seconds: float = 10.0
    sweep_interval_seconds: int = 300

    default_page_limit: int = 50
    max_page_limit: int = 100


settings = Settings()  # reads from env
