import os

# Basic settings helper to read environment configuration.


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


def _as_float(val: str | None, default: float) -> float:
    if val is None or not val.strip():
        return default
    try:
        return float(val)
    except ValueError:
        return default


class Settings:
    def __init__(self) -> None:
        # Geocoding service (Nominatim)
        self.NOMINATIM_BASE_URL: str = os.getenv(
            "NOMINATIM_BASE_URL", "https://nominatim.openstreetmap.org"
        ).rstrip("/")
        self.NOMINATIM_USER_AGENT: str | None = os.getenv("NOMINATIM_USER_AGENT")
        self.NOMINATIM_REFERER: str | None = os.getenv("NOMINATIM_REFERER")
        self.NOMINATIM_ACCEPT_LANGUAGE: str = os.getenv(
            "NOMINATIM_ACCEPT_LANGUAGE", "en-US,en;q=0.9"
        )
        self.NOMINATIM_TIMEOUT_SECONDS: float = _as_float(
            os.getenv("NOMINATIM_TIMEOUT_SECONDS"), 8.0
        )
        # Interactive typing hits the service per keystroke; batch users should raise this.
        self.NOMINATIM_MIN_INTERVAL: float = _as_float(os.getenv("NOMINATIM_MIN_INTERVAL"), 0.0)

        # Picker defaults
        self.PICKER_DEFAULT_LAT: float = _as_float(os.getenv("PICKER_DEFAULT_LAT"), 51.505)
        self.PICKER_DEFAULT_LNG: float = _as_float(os.getenv("PICKER_DEFAULT_LNG"), -0.09)
        self.PICKER_SEARCH_DEBOUNCE_MS: float = _as_float(
            os.getenv("PICKER_SEARCH_DEBOUNCE_MS"), 0.0
        )

        # Map preview tiles
        self.MAP_TILES_ENABLED: bool = _as_bool(os.getenv("MAP_TILES_ENABLED"), False)
        self.MAP_TILE_URL_TEMPLATE: str = os.getenv(
            "MAP_TILE_URL_TEMPLATE", "https://tile.openstreetmap.org/{z}/{x}/{y}.png"
        )
        self.MAP_TILE_TIMEOUT: float = _as_float(os.getenv("MAP_TILE_TIMEOUT"), 3.0)

        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
