"""Job invocation flags and results shared by every job."""
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


@dataclass
class JobFlags:
    """
    Per-invocation overrides. None means "use the configured default".

    candidate_batch_size doubles as the target batch size for jobs that
    page over targets rather than candidates.
    """
    user_id: Optional[int] = None
    batch_size: Optional[int] = None
    candidate_batch_size: Optional[int] = None
    pause_ms: Optional[int] = None
    full: bool = False


@dataclass
class JobResult:
    """Outcome of one job run."""
    job_name: str
    processed_users: int = 0
    skipped_users: int = 0
    written: int = 0
    failed_users: List[int] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failed_users

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
