# State = everything required to resume, continue, or audit an agent at a point in time.

# For each agent type the engine publishes:

# Status (working, idle, error)

# Current operation and workflow position (workflow id, step index)

# Outcome of the last run (last_result / last_error)

# Timestamps of the last transition

from .state_manager import StateManager

__all__ = ["StateManager"]
