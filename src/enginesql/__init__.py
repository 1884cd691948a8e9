from enginesql.exc import *

__version__ = "0.2.0"
USER_AGENT_NAME = "PyEngineSqlClient"

from enginesql.types import ExecutionState, Row, SSLOptions  # noqa: E402
from enginesql.result_set import ResultSet  # noqa: E402
from enginesql.session import QuerySession  # noqa: E402
from enginesql.client import Connection  # noqa: E402


def connect(**kwargs) -> "Connection":
    return Connection(**kwargs)
