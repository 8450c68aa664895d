"""Core configuration with Pydantic v2 Settings."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    app_env: str = "development"
    log_level: str = "INFO"

    # Upload API configuration
    # Max upload size in MB (default 25)
    MAX_UPLOAD_MB: int = 25

    # Factur-X generation
    FACTURX_DEFAULT_PROFILE: str = "comfort"  # minimum|basic|comfort|extended
    # by_rate: one ApplicableTradeTax per line VAT rate; flat: single block at 20 %
    FACTURX_VAT_BREAKDOWN: str = "by_rate"
    FACTURX_PRODUCER: str = "FormatX - PDF to Factur-X Converter"
    FACTURX_CREATOR: str = "FormatX API"
    # Optional XSD (e.g. Factur-X_1.0.07_EN16931.xsd) for schema checks on top of
    # the structural validation; empty disables it.
    FACTURX_XSD_PATH: str = ""


# Global settings instance
settings = Settings()
