from . import game, mail, meta  # noqa: F401  (registers commands)
from .parser import dispatch, registry, tokenize

__all__ = ["dispatch", "registry", "tokenize"]
