from hoa_tracker.config import Settings


def test_onboarding_defaults(monkeypatch):
    monkeypatch.delenv("SLUG_MAX_ATTEMPTS", raising=False)
    monkeypatch.delenv("ONBOARDING_COMPENSATE_FAILURES", raising=False)

    settings = Settings(_env_file=None)

    assert settings.trial_period_days == 14
    assert settings.slug_max_attempts == 1000
    assert settings.onboarding_compensate_failures is False


def test_environment_keys_are_case_insensitive(monkeypatch):
    monkeypatch.setenv("slug_max_attempts", "5")
    monkeypatch.setenv("ONBOARDING_COMPENSATE_FAILURES", "true")

    settings = Settings(_env_file=None)

    assert settings.slug_max_attempts == 5
    assert settings.onboarding_compensate_failures is True


def test_cors_origins_are_normalized():
    settings = Settings(_env_file=None, cors_origins=["https://app.example.com/", "http://localhost:3000"])
    assert settings.cors_allow_origins == ["https://app.example.com", "http://localhost:3000"]
