"""SQL pretty-printing via sqlglot.

only used for display (cli, debug logs). the text that gets executed is the
compiler's own rendering - formatting must never change what runs.
"""

import logging

import sqlglot

logger = logging.getLogger(__name__)


def format_sql(sql: str, dialect: str = "duckdb") -> str:
    """Pretty-print sql, falling back to the raw text if sqlglot can't parse it."""
    try:
        parsed = sqlglot.parse_one(sql, dialect=dialect)
        return parsed.sql(dialect=dialect, pretty=True)
    except Exception as e:
        # sqlglot doesn't know every duckdb/postgres construct - raw text is still useful
        logger.debug("sqlglot could not format query, showing raw text: %s", e)
        return sql
