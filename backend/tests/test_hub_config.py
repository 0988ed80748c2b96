"""
Unit tests for environment-driven settings in services/hub_config.py
"""
import pytest

from services.hub_config import HubSettings


class TestHubSettings:
    """Test defaults and environment parsing."""

    def test_defaults(self):
        settings = HubSettings.from_env({})
        assert settings.intake_polling_enabled is False
        assert settings.intake_poll_interval_seconds == 10
        assert settings.intake_fetch_timeout_seconds == 5
        assert settings.reminder_sweep_interval_seconds == 10
        assert settings.simulated_intake_enabled is False
        assert settings.simulated_intake_skip_probability == 0.2
        assert settings.dispatch_claims_worker is True
        assert settings.seed_demo_data is True
        assert settings.store_backend == "mongo"
        assert settings.db_name == "bank_correspondence_hub"

    def test_overrides(self):
        settings = HubSettings.from_env({
            "INTAKE_POLLING_ENABLED": "TRUE",
            "INTAKE_WEBHOOK_URL": "https://hooks.example.test/feed",
            "INTAKE_POLL_INTERVAL_SECONDS": "2.5",
            "DISPATCH_CLAIMS_WORKER": "false",
            "HUB_STORE_BACKEND": "JSON",
            "CORS_ORIGINS": "http://a.test, http://b.test",
        })
        assert settings.intake_polling_active is True
        assert settings.intake_poll_interval_seconds == 2.5
        assert settings.dispatch_claims_worker is False
        assert settings.store_backend == "json"
        assert settings.cors_origin_list == ["http://a.test", "http://b.test"]

    def test_polling_needs_url(self):
        settings = HubSettings.from_env({"INTAKE_POLLING_ENABLED": "true"})
        assert settings.intake_polling_active is False

    def test_invalid_backend(self):
        with pytest.raises(ValueError):
            HubSettings.from_env({"HUB_STORE_BACKEND": "redis"})

    def test_invalid_skip_probability(self):
        with pytest.raises(ValueError):
            HubSettings(simulated_intake_skip_probability=1.5)

    def test_to_dict_hides_mongo_url(self):
        assert "mongo_url" not in HubSettings().to_dict()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
