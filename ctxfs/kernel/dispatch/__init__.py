"""Asynchronous dispatch: completions and the context-affine dispatcher."""

from ctxfs.kernel.dispatch.completion import Completion
from ctxfs.kernel.dispatch.dispatcher import AsyncDispatcher

__all__ = ["AsyncDispatcher", "Completion"]
