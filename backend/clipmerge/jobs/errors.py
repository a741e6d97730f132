"""
Job-specific error types.

All errors inherit from JobError for easy catching.
Errors are explicit and provide actionable messages.
"""


class JobError(Exception):
    """Base exception for all job-related failures."""
    pass


class InvalidStateTransitionError(JobError):
    """Raised when attempting an illegal state transition."""
    
    def __init__(self, entity_type: str, current_state: str, target_state: str):
        self.entity_type = entity_type
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Invalid {entity_type} state transition: "
            f"{current_state} -> {target_state}"
        )


class BatchInProgressError(JobError):
    """Raised when a batch is started while another one is still running."""
    
    def __init__(self):
        super().__init__("A merge batch is already running")


class FailedOperationNotFoundError(JobError):
    """Raised when a retry targets an operation missing from the journal."""
    
    def __init__(self, session_id: str, output_path: str):
        self.session_id = session_id
        self.output_path = output_path
        super().__init__(
            f"No failed operation recorded for session {session_id} -> {output_path}"
        )
