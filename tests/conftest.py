"""Shared pytest fixtures for Castlestay tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_oidc_jwks_cache():
    """Reset the module-level JWKS cache between tests.

    A cached JWKS from a previous test would not match the current test's
    signing keys and turn valid tokens into 401s.
    """
    import castlestay.api.auth as auth_module

    auth_module._jwks_cache = None
    auth_module._jwks_cache_time = 0
    yield
    auth_module._jwks_cache = None
    auth_module._jwks_cache_time = 0
