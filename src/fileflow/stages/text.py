"""Text rewrite stages.

Both stages emit exactly one TEXT item per input item, in order, and keep no
state between items. BUFFER input is decoded with the configured encoding;
STREAM input is rejected with ShapeMismatchError.
"""

import logging
import os
import re
from typing import Mapping, Optional

from fileflow.config import EnvsubConfig, SubstituteConfig
from fileflow.stages.base import Stage
from fileflow.streaming.channel import Item, ItemKind
from fileflow.utils import truncate_string

logger = logging.getLogger(__name__)

ENV_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")


def substitute(text: str, source: str, replace: str, regexp: bool = False) -> str:
    """Replace every occurrence of ``source`` in ``text``.

    Args:
        text: Input text.
        source: Literal token, or a regular expression when ``regexp`` is set.
        replace: Replacement; a ``re`` template (``\\1``, ``\\g<name>``) when
            ``regexp`` is set, inserted verbatim otherwise.
        regexp: Treat ``source`` as a regular expression.

    Example:
        >>> substitute("value is {X}", "{X}", "42")
        'value is 42'
    """
    if regexp:
        return re.sub(source, replace, text)
    return text.replace(source, replace)


def envsub(text: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """Replace ``${NAME}`` placeholders with environment variable values.

    Placeholders for variables that are unset or empty are left untouched.

    Example:
        >>> envsub("port=${PORT}", {"PORT": "8080"})
        'port=8080'
    """
    env = os.environ if environ is None else environ

    def _lookup(match: "re.Match[str]") -> str:
        value = env.get(match.group(1))
        return value if value else match.group(0)

    return ENV_PLACEHOLDER.sub(_lookup, text)


class _TextRewrite(Stage):
    accepts = frozenset({ItemKind.TEXT, ItemKind.BUFFER})

    def _rewrite(self, text: str) -> str:
        raise NotImplementedError

    async def transform(self) -> None:
        async for item in self.consume():
            text = item.payload
            if item.kind is ItemKind.BUFFER:
                text = text.decode(self.config.encoding)
            rewritten = self._rewrite(text)
            logger.debug(f"[{self.name}] {item.describe()} -> {truncate_string(rewritten, 60)!r}")
            await self.emit(Item(ItemKind.TEXT, rewritten, item.name))


class Substitute(_TextRewrite):
    """Replace a literal token or regular expression in every text item."""

    config_class = SubstituteConfig

    def _rewrite(self, text: str) -> str:
        logger.info(
            f"[{self.name}] Replacing '{self.config.source}' by "
            f"'{self.config.replace}' on input text"
        )
        return substitute(text, self.config.source, self.config.replace, self.config.regexp)


class Envsub(_TextRewrite):
    """Interpolate ``${NAME}`` environment variables in every text item."""

    config_class = EnvsubConfig

    def __init__(self, config=None, *, environ: Optional[Mapping[str, str]] = None, **kwargs):
        super().__init__(config, **kwargs)
        self.environ = environ

    def _rewrite(self, text: str) -> str:
        logger.info(f"[{self.name}] Replacing environment variables on input text")
        return envsub(text, self.environ)

