from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "BUURTINFO_"}

    # PDOK Locatieserver (current platform first, legacy NGR second)
    locatieserver_url: str = "https://api.pdok.nl/bzk/locatieserver/search/v3_1"
    locatieserver_legacy_url: str = "https://geodata.nationaalgeoregister.nl/locatieserver/v3"

    # CBS open data
    cbs_odata_url: str = "https://opendata.cbs.nl/ODataApi/odata"
    police_odata_url: str = "https://dataderden.cbs.nl/ODataApi/odata"
    police_dataset_id: str = "47022NED"  # Geregistreerde misdrijven; wijk/buurt; maandcijfers

    # Neighbourhood boundaries
    wfs_url: str = "https://geodata.nationaalgeoregister.nl/wijkenbuurten2021/wfs"

    # Overpass mirrors, tried in order
    overpass_urls: list[str] = [
        "https://overpass.kumi.systems/api/interpreter",
        "https://overpass-api.de/api/interpreter",
    ]
    amenity_radius_m: int = 3000

    # Timeouts (seconds)
    request_timeout: float = 6.0
    slow_branch_timeout: float = 3.0
    late_update_timeout: float = 60.0  # streaming endpoint gives up waiting after this

    # Cache
    cache_backend: str = "sqlite"  # sqlite | redis
    cache_db_path: str = "data/buurtinfo_cache.db"
    redis_url: str = "redis://localhost:6379/0"

    # Badges selected when the caller does not pass a selection
    default_selected_properties: list[str] = ["neighbourhoodName", "meanIncomePerResident"]

    # App
    api_base: str = "http://localhost:8000"
    debug: bool = False
    log_level: str = "INFO"


settings = Settings()
