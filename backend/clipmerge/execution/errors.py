"""
Execution-specific errors.

All errors are non-fatal to the application.
A merge that fails at the process level is reported as a JobResult,
never raised. These exceptions cover setup problems only.
"""


class ExecutionError(Exception):
    """
    Base exception for execution failures.
    
    All execution errors inherit from this.
    """
    
    pass


class ToolNotFoundError(ExecutionError):
    """
    An external tool could not be located.
    
    Raised by tool discovery when neither the environment override,
    PATH, nor the common install locations contain the binary.
    """
    
    def __init__(self, tool: str, reason: str = ""):
        self.tool = tool
        self.reason = reason
        message = f"{tool} executable not found"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class ManifestError(ExecutionError):
    """
    The concat manifest could not be written.
    
    Usually an unwritable or missing output directory.
    """
    
    pass
