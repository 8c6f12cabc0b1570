"""
Exceptions raised by taskgate limiters
"""


class TaskGateError(Exception):
    """Base exception for taskgate errors"""
    pass


class InvalidConcurrency(TaskGateError, ValueError):
    """Exception for a concurrency ceiling that is not a positive integer or UNBOUNDED"""
    pass


class QueueCleared(TaskGateError):
    """Exception set on queued submissions discarded by clear_queue()"""
    pass
