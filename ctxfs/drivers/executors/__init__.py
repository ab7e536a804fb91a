"""Worker pool drivers."""

from ctxfs.drivers.executors.thread_pool import ThreadWorkerPool

__all__ = ["ThreadWorkerPool"]
