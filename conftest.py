import os
import pytest


@pytest.fixture(scope="session")
def endpoint():
    return os.getenv("ENGINE_ENDPOINT")


@pytest.fixture(scope="session")
def user():
    return os.getenv("ENGINE_USER", "presto")


@pytest.fixture(scope="session")
def catalog():
    return os.getenv("ENGINE_CATALOG", "tpch")


@pytest.fixture(scope="session")
def schema():
    return os.getenv("ENGINE_SCHEMA", "tiny")


@pytest.fixture(scope="session")
def header_prefix():
    return os.getenv("ENGINE_HEADER_PREFIX", "X-Trino")


@pytest.fixture(scope="session")
def connection_details(endpoint, user, catalog, schema, header_prefix):
    return {
        "endpoint": endpoint,
        "user": user,
        "catalog": catalog,
        "schema": schema,
        "header_prefix": header_prefix,
    }
