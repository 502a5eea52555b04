"""
Typed environment variables.

Each variable is declared once as an ``EnvVarSpec``; ``parse`` reads and
converts it, ``validate`` checks a whole list at startup and logs every
problem before the process refuses to boot.
"""

import os
from typing import Any, Callable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from . import log

logger = log.get_logger(__name__)


class EnvVarSpec(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    default: Optional[str] = None
    parse: Callable[[str], Any] = lambda x: x
    type: Tuple[Any, Any] = (str, ...)
    is_optional: bool = False
    is_secret: bool = False


def _raw(var: EnvVarSpec) -> Optional[str]:
    value = os.environ.get(var.id)
    if value is None or value == "":
        return var.default
    return value


def parse(var: EnvVarSpec) -> Any:
    value = _raw(var)
    if value is None:
        if var.is_optional:
            return None
        raise ValueError(f"Missing required environment variable {var.id}")
    return var.parse(value)


def check(var: EnvVarSpec) -> Optional[str]:
    """Return a description of what is wrong with ``var``, or None."""
    value = _raw(var)
    if value is None:
        return None if var.is_optional else "is required but not set"
    try:
        parsed = var.parse(value)
    except (TypeError, ValueError) as e:
        return f"could not be parsed: {e}"

    try:
        TypeAdapter(var.type[0]).validate_python(parsed)
    except ValidationError as e:
        return f"has the wrong type: {e.errors()[0]['msg']}"
    return None


def validate(env_vars: List[EnvVarSpec]) -> bool:
    ok = True
    for var in env_vars:
        problem = check(var)
        if problem is None:
            shown = "***" if var.is_secret else _raw(var)
            logger.debug(f"{var.id}={shown}")
            continue
        logger.error(f"Environment variable {var.id} {problem}")
        ok = False
    return ok
