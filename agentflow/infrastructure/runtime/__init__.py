from .clock import Clock, IdGenerator, SystemClock

__all__ = ["Clock", "IdGenerator", "SystemClock"]
