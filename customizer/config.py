import logging
import os
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class Settings:
	database_url: str = "sqlite:///./customizer.db"
	log_level: str = "INFO"
	default_min_custom_quantity: int = 1
	default_max_custom_quantity: int = 100
	catalog_limit: int = 1000
	currency_quantum: Decimal = Decimal("0.01")


def _env_int(name: str, default: int) -> int:
	value = os.getenv(name)
	if value is None or value.strip() == "":
		return default
	return int(value)


def load_settings() -> Settings:
	database_url = os.getenv("CUSTOMIZER_DATABASE_URL") or os.getenv("DATABASE_URL") or Settings.database_url
	return Settings(
		database_url=database_url,
		log_level=os.getenv("CUSTOMIZER_LOG_LEVEL", "INFO").upper(),
		default_min_custom_quantity=_env_int("CUSTOMIZER_MIN_CUSTOM_QUANTITY", 1),
		default_max_custom_quantity=_env_int("CUSTOMIZER_MAX_CUSTOM_QUANTITY", 100),
		catalog_limit=_env_int("CUSTOMIZER_CATALOG_LIMIT", 1000),
		currency_quantum=Decimal(os.getenv("CUSTOMIZER_CURRENCY_QUANTUM", "0.01")),
	)


def configure_logging(settings: Settings) -> None:
	logging.basicConfig(
		level=getattr(logging, settings.log_level, logging.INFO),
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
	)


SETTINGS = load_settings()
