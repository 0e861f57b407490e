"""Configuration management for the payment gateway."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderSettings(BaseModel):
    """Settings shared by every provider section."""

    model_config = ConfigDict(extra="allow")

    driver: str | None = Field(default=None, description="Registered driver name, if not the section name")
    driver_class: str | None = Field(default=None, description="Dotted path to a custom driver class")
    enabled: bool = Field(default=False, description="Whether the provider may be used")
    base_url: str | None = Field(default=None, description="Override the provider API base URL")
    callback_url: str | None = Field(default=None, description="Default redirect URL after checkout")
    webhook_url: str | None = Field(default=None, description="URL the provider posts notifications to")
    currencies: list[str] = Field(default_factory=list, description="Supported ISO currency codes")
    timeout_seconds: float = Field(default=30.0, description="HTTP request timeout")


class PaystackSettings(ProviderSettings):
    """Paystack settings."""

    enabled: bool = True
    secret_key: str = Field(default="", description="Paystack secret key")
    public_key: str = Field(default="", description="Paystack public key")
    base_url: str | None = "https://api.paystack.co"
    currencies: list[str] = Field(default_factory=lambda: ["NGN", "GHS", "ZAR", "USD"])


class FlutterwaveSettings(ProviderSettings):
    """Flutterwave settings."""

    secret_key: str = Field(default="", description="Flutterwave secret key")
    public_key: str = Field(default="", description="Flutterwave public key")
    encryption_key: str = Field(default="", description="Flutterwave encryption key")
    webhook_secret: str = Field(default="", description="verif-hash shared secret")
    base_url: str | None = "https://api.flutterwave.com/v3"
    currencies: list[str] = Field(
        default_factory=lambda: ["NGN", "USD", "EUR", "GBP", "KES", "UGX", "TZS", "GHS", "ZAR"]
    )


class MonnifySettings(ProviderSettings):
    """Monnify settings."""

    api_key: str = Field(default="", description="Monnify API key")
    secret_key: str = Field(default="", description="Monnify secret key")
    contract_code: str = Field(default="", description="Monnify contract code")
    base_url: str | None = "https://api.monnify.com"
    currencies: list[str] = Field(default_factory=lambda: ["NGN"])


class StripeSettings(ProviderSettings):
    """Stripe settings."""

    secret_key: str = Field(default="", description="Stripe secret API key")
    public_key: str = Field(default="", description="Stripe publishable key")
    webhook_secret: str = Field(default="", description="Stripe webhook signing secret")
    base_url: str | None = "https://api.stripe.com"
    currencies: list[str] = Field(default_factory=lambda: ["USD", "EUR", "GBP", "CAD", "AUD"])


class PayPalSettings(ProviderSettings):
    """PayPal settings."""

    client_id: str = Field(default="", description="PayPal REST client id")
    client_secret: str = Field(default="", description="PayPal REST client secret")
    webhook_id: str = Field(default="", description="PayPal webhook id for signature verification")
    mode: str = Field(default="sandbox", description="sandbox or live")
    base_url: str | None = "https://api-m.sandbox.paypal.com"
    currencies: list[str] = Field(default_factory=lambda: ["USD", "EUR", "GBP", "CAD", "AUD"])


class MollieSettings(ProviderSettings):
    """Mollie settings."""

    api_key: str = Field(default="", description="Mollie API key")
    webhook_secret: str = Field(default="", description="Optional HMAC secret for webhook signatures")
    base_url: str | None = "https://api.mollie.com"
    currencies: list[str] = Field(
        default_factory=lambda: ["EUR", "USD", "GBP", "CHF", "SEK", "NOK", "DKK", "PLN"]
    )


class SquareSettings(ProviderSettings):
    """Square settings."""

    access_token: str = Field(default="", description="Square access token")
    location_id: str = Field(default="", description="Square location id")
    webhook_signature_key: str = Field(default="", description="Square webhook signature key")
    base_url: str | None = "https://connect.squareupsandbox.com"
    currencies: list[str] = Field(default_factory=lambda: ["USD", "CAD", "GBP", "AUD", "JPY", "EUR"])


class NowPaymentsSettings(ProviderSettings):
    """NowPayments settings."""

    api_key: str = Field(default="", description="NowPayments API key")
    ipn_secret: str = Field(default="", description="NowPayments IPN secret")
    base_url: str | None = "https://api.nowpayments.io"
    currencies: list[str] = Field(default_factory=lambda: ["USD", "EUR", "GBP", "NGN"])


class HealthCheckSettings(BaseModel):
    """Provider health-check settings."""

    enabled: bool = Field(default=True, description="Run health checks before charging")
    cache_ttl_seconds: int = Field(default=300, description="How long a health result is cached")
    timeout_seconds: float = Field(default=5.0, description="Health probe timeout")


class WebhookSettings(BaseModel):
    """Inbound webhook settings."""

    path: str = Field(default="/payments/webhook", description="Route prefix for provider callbacks")
    verify_signature: bool = Field(default=True, description="Reject webhooks with invalid signatures")


class TransactionLogSettings(BaseModel):
    """Transaction persistence settings."""

    enabled: bool = Field(default=True, description="Persist transactions at charge time")
    table: str = Field(
        default="payment_transactions",
        description="Transaction table name; read from the environment once, when the ORM model is imported",
    )


class RateLimitSettings(BaseModel):
    """Charge rate-limit settings."""

    enabled: bool = Field(default=True, description="Apply rate limiting to charges")
    max_attempts: int = Field(default=60, description="Attempts allowed per window")
    decay_seconds: int = Field(default=60, description="Window length in seconds")


BUILTIN_PROVIDERS = (
    "paystack",
    "flutterwave",
    "monnify",
    "stripe",
    "paypal",
    "mollie",
    "square",
    "nowpayments",
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool = Field(default=True, description="Render logs as JSON")

    # Provider selection
    default_provider: str = Field(default="paystack", description="First provider in the fallback chain")
    fallback_provider: str | None = Field(default="stripe", description="Second provider in the fallback chain")
    default_currency: str = Field(default="NGN", description="Currency used when none is given")

    # Providers
    paystack: PaystackSettings = Field(default_factory=PaystackSettings)
    flutterwave: FlutterwaveSettings = Field(default_factory=FlutterwaveSettings)
    monnify: MonnifySettings = Field(default_factory=MonnifySettings)
    stripe: StripeSettings = Field(default_factory=StripeSettings)
    paypal: PayPalSettings = Field(default_factory=PayPalSettings)
    mollie: MollieSettings = Field(default_factory=MollieSettings)
    square: SquareSettings = Field(default_factory=SquareSettings)
    nowpayments: NowPaymentsSettings = Field(default_factory=NowPaymentsSettings)
    custom_providers: dict[str, ProviderSettings] = Field(
        default_factory=dict, description="Additional providers backed by registered drivers"
    )

    # Ambient behaviour
    health_check: HealthCheckSettings = Field(default_factory=HealthCheckSettings)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    transaction_log: TransactionLogSettings = Field(default_factory=TransactionLogSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    session_ttl_seconds: int = Field(default=3600, description="TTL of reference -> provider cache entries")

    # Storage
    database_url: str = Field(default="sqlite:///./payments.db", description="Transaction store URL")
    redis_url: str | None = Field(default=None, description="Redis URL for the cache store")

    model_config = SettingsConfigDict(
        env_prefix="PAYMENTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    @field_validator("fallback_provider", mode="before")
    @classmethod
    def _falsy_fallback(cls, value: Any) -> Any:
        if value is None or value is False:
            return None
        if isinstance(value, str) and value.strip().lower() in ("", "false", "null", "none"):
            return None
        return value

    def provider_names(self) -> list[str]:
        """Names of every configured provider, built-in first."""
        return [*BUILTIN_PROVIDERS, *(n for n in self.custom_providers if n not in BUILTIN_PROVIDERS)]

    def provider_settings(self, name: str) -> ProviderSettings | None:
        """Return the settings section for a provider, or None if unconfigured."""
        name = name.lower()
        if name in self.custom_providers:
            return self.custom_providers[name]
        if name in BUILTIN_PROVIDERS:
            return getattr(self, name)
        return None

    def provider_config(self, name: str) -> dict[str, Any] | None:
        """Return a provider's settings as the plain dict drivers are built from."""
        section = self.provider_settings(name)
        if section is None:
            return None
        return section.model_dump()


# Global settings instance
settings = Settings()
