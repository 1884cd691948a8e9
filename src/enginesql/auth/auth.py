from enginesql.auth.authenticators import (
    AuthProvider,
    AccessTokenAuthProvider,
    BasicAuthProvider,
)


def get_auth_provider(**kwargs) -> AuthProvider:
    access_token = kwargs.get("access_token")
    username = kwargs.get("username")
    password = kwargs.get("password")

    if access_token and (username or password):
        raise ValueError(
            "Pass either access_token or username/password, not both."
        )

    if access_token:
        return AccessTokenAuthProvider(access_token)

    if username is not None or password is not None:
        if username is None or password is None:
            raise ValueError(
                "Basic authentication needs both username and password."
            )
        return BasicAuthProvider(username, password)

    # The engine trusts the user header when no credentials are configured
    return AuthProvider()
