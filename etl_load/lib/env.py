"""Environment variable helpers for load configuration.

Connection strings usually hold credentials, so configs reference them as
``${VAR_NAME}`` and the value is substituted at load time. A ``.env`` file
can be loaded first via python-dotenv.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

__all__ = ["expand_env_vars", "load_env_file"]

# Only the braced form: bare "$" is common in ODBC passwords
ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def load_env_file(
    path: Optional[Union[str, Path]] = None,
    *,
    override: bool = False,
) -> bool:
    """Load environment variables from a .env file.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    return load_dotenv(dotenv_path=path, override=override)


def expand_env_vars(value: str, *, strict: bool = False) -> str:
    """Expand ``${VAR}`` references in a string.

    Args:
        value: String potentially containing env var references
        strict: If True, raise KeyError for missing variables

    Example:
        >>> os.environ["ORDERS_DB"] = "Driver={ODBC Driver 18 for SQL Server};Server=db"
        >>> expand_env_vars("${ORDERS_DB};Database=orders")
        'Driver={ODBC Driver 18 for SQL Server};Server=db;Database=orders'
    """

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            if strict:
                raise KeyError(f"Environment variable not set: {var_name}")
            return match.group(0)
        return env_value

    return ENV_VAR_PATTERN.sub(replacer, value)
