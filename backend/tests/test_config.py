import config


def test_token_lifetime_only_in_test_settings():
    # Tokens are minted by the identity service; only the fixtures mint them here
    assert not hasattr(config.Config, 'JWT_EXPIRATION_DELTA')
    assert config.TestConfig.JWT_EXPIRATION_DELTA.total_seconds() == 3600
