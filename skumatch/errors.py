"""
Exception taxonomy for the match job engine.

Job-level errors propagate to the caller (route / RQ worker). Row-level errors
are absorbed by the row processor and recorded on the row with an error code.
"""


class MatchJobError(Exception):
    """Base class for job engine errors."""


class JobNotFoundError(MatchJobError):
    def __init__(self, job_id):
        self.job_id = job_id
        super().__init__(f"job not found: {job_id}")


class JobAlreadyRunningError(MatchJobError):
    """Another driver holds the job (status=running with a fresh heartbeat)."""
    def __init__(self, job_id):
        self.job_id = job_id
        super().__init__(f"job {job_id} is already running")


class JobStateError(MatchJobError):
    """Operation not allowed in the job's current status."""
    def __init__(self, job_id, status, action):
        self.job_id = job_id
        self.status = status
        self.action = action
        super().__init__(f"cannot {action} job {job_id} in status '{status}'")


class StoreWriteError(MatchJobError):
    """A store write still failed after bounded retries."""
    def __init__(self, operation, cause=None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"store write '{operation}' failed: {cause}")


class ResolverError(MatchJobError):
    """Resolver call failed (transport, HTTP status, undecodable body)."""
    code = 'resolver_error'


class ResolverTimeout(ResolverError):
    code = 'resolver_timeout'


class InvalidResolutionError(ResolverError):
    """Resolver answered with a shape the engine cannot map onto a row."""
    code = 'invalid_result'
