import logging
import os
from dataclasses import dataclass

DEFAULT_SPREADSHEET_ID = "12dXywY4L-NXhuKxJe9TuXBo-C4dtvcaWlPm6LdHeP5U"
DEFAULT_NODE = "Página1"


@dataclass
class AppConfig:
    spreadsheet_id: str
    default_node: str
    admin_token: str | None
    log_level: str
    ai_model: str
    openai_api_key: str | None
    monthly_hours: float


def load_config() -> AppConfig:
    return AppConfig(
        spreadsheet_id=os.environ.get("FABRITRACK_SPREADSHEET_ID", DEFAULT_SPREADSHEET_ID),
        default_node=os.environ.get("FABRITRACK_DEFAULT_NODE", DEFAULT_NODE),
        admin_token=os.environ.get("ADMIN_TOKEN") or None,
        log_level=os.environ.get("FABRITRACK_LOG_LEVEL", "INFO").upper(),
        ai_model=os.environ.get("FABRITRACK_AI_MODEL", "gpt-4o-mini"),
        openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
        monthly_hours=float(os.environ.get("FABRITRACK_MONTHLY_HOURS", "540")),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
