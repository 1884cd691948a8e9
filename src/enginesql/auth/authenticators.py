from typing import Dict

from urllib3.util import make_headers

from enginesql.common.http import HttpHeader


class AuthProvider:
    def add_headers(self, request_headers: Dict[str, str]):
        pass


class AccessTokenAuthProvider(AuthProvider):
    def __init__(self, access_token: str):
        self.__authorization_header_value = "Bearer {}".format(access_token)

    def add_headers(self, request_headers: Dict[str, str]):
        request_headers[HttpHeader.AUTHORIZATION.value] = self.__authorization_header_value


class BasicAuthProvider(AuthProvider):
    def __init__(self, username: str, password: str):
        self.__authorization_headers = make_headers(
            basic_auth="{}:{}".format(username, password)
        )

    def add_headers(self, request_headers: Dict[str, str]):
        request_headers.update(self.__authorization_headers)
