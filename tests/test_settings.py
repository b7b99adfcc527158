from snipwire.settings import Settings


class TestSettings:
    def test_defaults(self):
        settings = Settings()

        assert settings.api_endpoint == "https://app.snipcart.com/api/"
        assert settings.concurrent_requests is True
        assert not settings.is_live

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SNIPCART_API_KEY_SECRET", "sk_live_1")
        monkeypatch.setenv("SNIPCART_ENVIRONMENT", "1")
        monkeypatch.setenv("SNIPWIRE_CONCURRENT_REQUESTS", "false")
        monkeypatch.setenv("SNIPWIRE_HTTP_TIMEOUT", "12.5")

        settings = Settings.from_env()

        assert settings.is_live
        assert settings.active_api_key == "sk_live_1"
        assert settings.concurrent_requests is False
        assert settings.http_timeout == 12.5

    def test_test_environment_selects_test_key(self):
        settings = Settings(
            SNIPCART_API_KEY_SECRET="live",
            SNIPCART_API_KEY_SECRET_TEST="test",
            SNIPCART_ENVIRONMENT=0,
        )
        assert settings.active_api_key == "test"
