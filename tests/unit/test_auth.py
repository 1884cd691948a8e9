import base64

import pytest

from enginesql.auth.auth import get_auth_provider
from enginesql.auth.authenticators import (
    AccessTokenAuthProvider,
    AuthProvider,
    BasicAuthProvider,
)


class TestAuthProviders:
    def test_access_token_provider(self):
        headers = {}
        AccessTokenAuthProvider("dapi123").add_headers(headers)
        assert headers == {"Authorization": "Bearer dapi123"}

    def test_basic_provider(self):
        headers = {}
        BasicAuthProvider("alice", "s3cret").add_headers(headers)

        expected = base64.b64encode(b"alice:s3cret").decode("ascii")
        assert headers["authorization"] == "Basic {}".format(expected)

    def test_noop_provider(self):
        headers = {"X-Engine-User": "alice"}
        AuthProvider().add_headers(headers)
        assert headers == {"X-Engine-User": "alice"}

    def test_get_auth_provider(self):
        assert type(get_auth_provider()) is AuthProvider
        assert isinstance(get_auth_provider(access_token="t"), AccessTokenAuthProvider)
        assert isinstance(
            get_auth_provider(username="u", password="p"), BasicAuthProvider
        )

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"access_token": "t", "username": "u", "password": "p"},
            {"username": "u"},
            {"password": "p"},
        ],
    )
    def test_get_auth_provider_rejects_ambiguous_credentials(self, kwargs):
        with pytest.raises(ValueError):
            get_auth_provider(**kwargs)
