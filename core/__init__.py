# Core module - error taxonomy and the tool gateway
# The gateway is the ONLY coordinator between the agent and tool permissions.
# Import it from core.gateway; tools depends on core.errors, so the package
# root must not pull the gateway in.

from .errors import ErrorHandler, GateError, ErrorCategory

__all__ = ["ErrorHandler", "GateError", "ErrorCategory"]
