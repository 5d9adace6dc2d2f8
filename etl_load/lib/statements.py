"""Pre and post load statements.

Statements are written once with ``@Name`` (or ``:Name``) placeholders and
compiled to whatever DB-API paramstyle the target driver expects:

    DELETE FROM dbo.orders WHERE id > @LastMaxId

    qmark    -> DELETE FROM dbo.orders WHERE id > ?            [42]
    pyformat -> DELETE FROM dbo.orders WHERE id > %(LastMaxId)s {"LastMaxId": 42}
    named    -> DELETE FROM dbo.orders WHERE id > :LastMaxId    {"LastMaxId": 42}
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple, Type, Union

from etl_load.lib.errors import StatementError
from etl_load.lib.metrics import PhaseTimer

if TYPE_CHECKING:
    from etl_load.lib.providers.base import BatchWriter

logger = logging.getLogger(__name__)

__all__ = ["StatementExecutor", "compile_statement"]

# Single quoted SQL literal, '' is an escaped quote
_LITERAL = re.compile(r"'(?:[^']|'')*'")
# @Name or :Name, but not @@SYSVAR, ::cast or a:b
_PLACEHOLDER = re.compile(r"(?<![\w@:])[@:]([A-Za-z_][A-Za-z0-9_]*)")

PARAMSTYLES = ("qmark", "pyformat", "named")

CompiledArgs = Optional[Union[List[Any], Dict[str, Any]]]


def compile_statement(
    text: str,
    parameters: Mapping[str, Any],
    paramstyle: str,
) -> Tuple[str, CompiledArgs]:
    """Rewrite named placeholders into a driver paramstyle.

    Only names present in ``parameters`` are rewritten; anything else,
    including placeholders inside quoted literals, is left as written.

    Returns:
        Tuple of (sql, args). ``args`` is None when the statement references
        no known parameter, so drivers never see an empty parameter set.
    """
    if paramstyle not in PARAMSTYLES:
        raise ValueError(f"Unsupported paramstyle '{paramstyle}'. Valid options: {PARAMSTYLES}")

    positional: List[Any] = []
    used: Dict[str, Any] = {}

    def replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name not in parameters:
            return match.group(0)
        used[name] = parameters[name]
        if paramstyle == "qmark":
            positional.append(parameters[name])
            return "?"
        if paramstyle == "pyformat":
            return f"%({name})s"
        return f":{name}"

    def escape(segment: str) -> str:
        # pyformat drivers treat every % as a format directive once args are passed
        return segment.replace("%", "%%") if paramstyle == "pyformat" else segment

    pieces: List[str] = []
    cursor = 0
    for literal in _LITERAL.finditer(text):
        pieces.append(_PLACEHOLDER.sub(replace, escape(text[cursor:literal.start()])))
        pieces.append(escape(literal.group(0)))
        cursor = literal.end()
    pieces.append(_PLACEHOLDER.sub(replace, escape(text[cursor:])))

    if not used:
        return text, None

    sql = "".join(pieces)
    if paramstyle == "qmark":
        return sql, positional
    return sql, used


class StatementExecutor:
    """Runs single parameterized statements against the load target.

    Each call opens its own connection through the provider's writer class,
    commits, and closes it. There is no retry: a failure aborts the load.

    Example:
        executor = StatementExecutor(SqliteWriter, "/tmp/target.db")
        elapsed_ms = await executor.execute(
            "DELETE FROM orders WHERE id > @LastMaxId", {"LastMaxId": 10}
        )
    """

    def __init__(
        self,
        writer_class: Type["BatchWriter"],
        connection_string: str,
    ) -> None:
        self.writer_class = writer_class
        self.connection_string = connection_string

    async def execute(self, statement: str, parameters: Mapping[str, Any]) -> float:
        """Execute a statement and return the elapsed time in milliseconds.

        Raises:
            StatementError: If the statement cannot be compiled or run
        """
        return await asyncio.to_thread(self.execute_sync, statement, parameters)

    def execute_sync(self, statement: str, parameters: Mapping[str, Any]) -> float:
        provider = self.writer_class.provider.value
        try:
            sql, args = compile_statement(statement, parameters, self.writer_class.paramstyle)
        except ValueError as e:
            raise StatementError(
                "Could not compile statement", statement=statement, cause=e
            ) from e

        timer = PhaseTimer(name="statement")
        try:
            conn = self.writer_class.connect(self.connection_string)
        except Exception as e:
            raise StatementError(
                f"Could not connect to {provider} target",
                statement=statement,
                cause=e,
            ) from e

        try:
            self.writer_class.run_statement(conn, sql, args)
        except Exception as e:
            self.writer_class.rollback_quietly(conn)
            raise StatementError(
                "Statement execution failed", statement=statement, cause=e
            ) from e
        finally:
            conn.close()

        elapsed = timer.stop()
        logger.info("Executed statement on %s in %.1fms", provider, elapsed)
        return elapsed
