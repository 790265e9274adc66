"""Tests for configuration management.

Tests cover:
- Default values
- Loading from environment variables (including nested settings)
- Validation of prefixes, ranges and bucket names
- Production constraints
- Runtime validation (validate_settings)
- Policy snapshot and hash
- Settings caching
"""

from decimal import Decimal

import pytest
from pydantic import SecretStr, ValidationError

from rdam.core.config import (
    ConfigValidationError,
    Environment,
    LifecycleSettings,
    PaymentMode,
    PaymentSettings,
    S3Settings,
    Settings,
    SMTPSettings,
    validate_settings,
)
from rdam.core.settings import (
    clear_settings_cache,
    describe_validation_error,
    get_settings,
    load_settings,
)


@pytest.fixture(autouse=True)
def _clear_cache():
    clear_settings_cache()
    yield
    clear_settings_cache()


def _production(**overrides):
    values = {
        "environment": Environment.PRODUCTION,
        "payment": PaymentSettings(
            mode=PaymentMode.LIVE,
            hmac_secret=SecretStr("prod-secret"),
            merchant_guid="merchant",
        ),
    }
    values.update(overrides)
    return Settings(**values)


class TestDefaults:
    """Tests for default configuration values."""

    def test_lifecycle_defaults(self):
        """Test documented lifecycle defaults."""
        settings = LifecycleSettings()

        assert settings.tramite_prefix == "RDAM"
        assert settings.pending_timeout_days == 60
        assert settings.published_validity_days == 65
        assert settings.fee_amount == Decimal("1500.00")
        assert settings.max_certificate_bytes == 10 * 1024 * 1024

    def test_token_defaults(self):
        """Test verification code and citizen token defaults."""
        settings = Settings(environment=Environment.TEST)

        assert settings.redis.otp_ttl_minutes == 15
        assert settings.redis.otp_max_attempts == 3
        assert settings.redis.citizen_token_ttl_hours == 24

    def test_payment_defaults_to_sim(self):
        """Test the gateway runs simulated by default."""
        assert PaymentSettings().mode is PaymentMode.SIM


class TestEnvironmentLoading:
    """Tests for loading settings from the environment."""

    def test_nested_values(self, monkeypatch):
        """Test nested settings use the double underscore delimiter."""
        monkeypatch.setenv("RDAM_ENVIRONMENT", "staging")
        monkeypatch.setenv("RDAM_LIFECYCLE__PENDING_TIMEOUT_DAYS", "30")
        monkeypatch.setenv("RDAM_PUBLIC_BASE_URL", "https://rdam.example.gob.ar/")

        settings = Settings()

        assert settings.environment is Environment.STAGING
        assert settings.lifecycle.pending_timeout_days == 30
        assert settings.public_base_url == "https://rdam.example.gob.ar"

    def test_lifecycle_from_env(self, monkeypatch):
        """Test lifecycle settings read their own prefix."""
        monkeypatch.setenv("RDAM_LIFECYCLE__TRAMITE_PREFIX", "SFE")

        assert LifecycleSettings().tramite_prefix == "SFE"


class TestValidation:
    """Tests for declarative validation."""

    @pytest.mark.parametrize("prefix", ["rdam", "", "TOO-LONG-PREFIX", "RD AM"])
    def test_invalid_prefix(self, prefix):
        """Test the trámite prefix must be short uppercase alphanumerics."""
        with pytest.raises(ValidationError):
            LifecycleSettings(tramite_prefix=prefix)

    def test_timeout_range(self):
        """Test expiry windows must be at least one day."""
        with pytest.raises(ValidationError):
            LifecycleSettings(pending_timeout_days=0)

    @pytest.mark.parametrize("bucket", ["UPPER", "a", "-leading"])
    def test_invalid_bucket_name(self, bucket):
        """Test S3 bucket names follow the naming rules."""
        with pytest.raises(ValidationError):
            S3Settings(bucket=bucket)


class TestProductionConstraints:
    """Tests for production-only constraints."""

    def test_valid_production(self):
        """Test a correctly configured production environment loads."""
        settings = _production()

        assert settings.is_production
        assert not settings.is_development

    def test_debug_forbidden(self):
        """Test debug mode is refused in production."""
        with pytest.raises(ValidationError, match="Debug mode"):
            _production(debug=True)

    def test_sim_payments_forbidden(self):
        """Test simulated payments are refused in production."""
        with pytest.raises(ValidationError, match="payment mode"):
            _production(payment=PaymentSettings(hmac_secret=SecretStr("prod-secret")))

    def test_dev_secret_forbidden(self):
        """Test the development webhook secret is refused in production."""
        with pytest.raises(ValidationError, match="webhook secret"):
            _production(payment=PaymentSettings(mode=PaymentMode.LIVE))

    def test_insecure_smtp_allowed_with_warning(self, caplog):
        """Test SMTP without TLS only warns."""
        _production(smtp=SMTPSettings(use_tls=False, use_ssl=False))

        assert "SMTP is configured without TLS" in caplog.text


class TestValidateSettings:
    """Tests for validate_settings."""

    def _settings(self, **s3):
        values = {"access_key": "key", "secret_key": "secret"}
        values.update(s3)
        return Settings(environment=Environment.TEST, s3=S3Settings(**values))

    def test_valid(self):
        """Test complete settings pass."""
        validate_settings(self._settings())

    def test_missing_s3_key(self):
        """Test a missing S3 access key fails fast."""
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_settings(self._settings(access_key=""))

        assert exc_info.value.field == "s3.access_key"

    def test_live_mode_requires_merchant(self):
        """Test live payments require a merchant id."""
        settings = self._settings()
        settings.payment = PaymentSettings(mode=PaymentMode.LIVE)

        with pytest.raises(ConfigValidationError) as exc_info:
            validate_settings(settings)

        assert exc_info.value.field == "payment.merchant_guid"


class TestPolicySnapshot:
    """Tests for the policy snapshot and hash."""

    def test_snapshot_has_no_secrets(self):
        """Test the snapshot carries policy values and no credentials."""
        snapshot = Settings(environment=Environment.TEST).get_policy_snapshot()

        assert snapshot["lifecycle"]["pending_timeout_days"] == 60
        assert snapshot["tokens"]["otp_max_attempts"] == 3
        assert "dev-secret" not in str(snapshot)

    def test_hash_changes_with_policy(self):
        """Test the hash reflects policy changes."""
        base = Settings(environment=Environment.TEST)
        changed = Settings(
            environment=Environment.TEST,
            lifecycle=LifecycleSettings(published_validity_days=30),
        )

        assert base.get_policy_hash() == Settings(environment=Environment.TEST).get_policy_hash()
        assert base.get_policy_hash() != changed.get_policy_hash()


class TestSettingsCache:
    """Tests for the cached settings accessor."""

    def test_cached(self, monkeypatch):
        """Test settings are loaded once."""
        monkeypatch.setenv("RDAM_S3__ACCESS_KEY", "key")
        monkeypatch.setenv("RDAM_S3__SECRET_KEY", "secret")

        assert get_settings() is get_settings()

    def test_invalid_settings_exit(self, monkeypatch):
        """Test invalid settings stop the process."""
        monkeypatch.setenv("RDAM_LIFECYCLE__PENDING_TIMEOUT_DAYS", "0")

        with pytest.raises(SystemExit):
            get_settings()

    def test_cache_cleared(self, monkeypatch):
        """Test clearing the cache re-reads the environment."""
        monkeypatch.setenv("RDAM_S3__ACCESS_KEY", "key")
        monkeypatch.setenv("RDAM_S3__SECRET_KEY", "secret")
        monkeypatch.setenv("RDAM_LIFECYCLE__TRAMITE_PREFIX", "ABC")
        first = get_settings()

        monkeypatch.setenv("RDAM_LIFECYCLE__TRAMITE_PREFIX", "XYZ")
        clear_settings_cache()

        assert first.lifecycle.tramite_prefix == "ABC"
        assert get_settings().lifecycle.tramite_prefix == "XYZ"

    def test_load_settings_raises(self, monkeypatch):
        """Test load_settings reports errors instead of exiting."""
        monkeypatch.setenv("RDAM_LIFECYCLE__PENDING_TIMEOUT_DAYS", "0")

        with pytest.raises(ValidationError) as exc_info:
            load_settings()

        assert "pending_timeout_days" in describe_validation_error(exc_info.value)
