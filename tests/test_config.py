import pytest

from suspicious_login_detector import ConfigError, DetectorConfig, RiskThresholds, RiskWeights, ServiceSettings


def test_defaults_match_documented_values():
    config = DetectorConfig()
    assert config.max_travel_speed == 900
    assert config.brute_force_window == 30
    assert config.brute_force_threshold == 5
    assert config.location_change_threshold == 100
    assert config.risk_thresholds == RiskThresholds(low=30, medium=50, high=70, critical=85)
    assert config.weights.total() == pytest.approx(1.0)


@pytest.mark.parametrize(
    "thresholds",
    [
        RiskThresholds(low=30, medium=30, high=70, critical=85),
        RiskThresholds(low=30, medium=80, high=70, critical=85),
        RiskThresholds(low=30, medium=50, high=70, critical=101),
        RiskThresholds(low=-1, medium=50, high=70, critical=85),
    ],
)
def test_rejects_misordered_or_out_of_range_thresholds(thresholds):
    with pytest.raises(ConfigError):
        DetectorConfig(risk_thresholds=thresholds)


def test_rejects_weights_not_summing_to_one():
    with pytest.raises(ConfigError, match="sum to 1.0"):
        DetectorConfig(weights=RiskWeights(location_change=0.5))


@pytest.mark.parametrize(
    "overrides",
    [{"max_travel_speed": 0}, {"brute_force_window": 0}, {"brute_force_threshold": -1}],
)
def test_rejects_non_positive_limits(overrides):
    with pytest.raises(ConfigError):
        DetectorConfig(**overrides)


def test_custom_thresholds_drive_classification():
    config = DetectorConfig(risk_thresholds=RiskThresholds(low=5, medium=10, high=20, critical=40))
    assert config.classify(9) == "low"
    assert config.classify(10) == "medium"
    assert config.classify(39) == "high"
    assert config.classify(40) == "critical"


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("MONGODB_URI", "mongodb://db:27017/")
    monkeypatch.setenv("MONGODB_DATABASE", "logins")
    monkeypatch.setenv("GEOIP_DATABASE_PATH", "/data/GeoLite2-City.mmdb")
    monkeypatch.setenv("PROFILE_HISTORY_LIMIT", "500")
    monkeypatch.setenv("DETECTOR_MAX_TRAVEL_SPEED", "1000")
    monkeypatch.setenv("DETECTOR_BRUTE_FORCE_THRESHOLD", "3")
    monkeypatch.delenv("CELERY_RESULT_BACKEND", raising=False)
    monkeypatch.setenv("CELERY_BROKER_URL", "redis://cache:6379/1")

    settings = ServiceSettings.from_env()

    assert settings.mongodb_uri == "mongodb://db:27017/"
    assert settings.mongodb_database == "logins"
    assert settings.geoip_database_path == "/data/GeoLite2-City.mmdb"
    assert settings.profile_history_limit == 500
    assert settings.celery_result_backend == "redis://cache:6379/1"
    assert settings.detector.max_travel_speed == 1000
    assert settings.detector.brute_force_threshold == 3
    assert settings.detector.brute_force_window == 30


def test_settings_reject_garbage_numbers(monkeypatch):
    monkeypatch.setenv("DETECTOR_BRUTE_FORCE_WINDOW", "half an hour")
    with pytest.raises(ConfigError):
        ServiceSettings.from_env()
