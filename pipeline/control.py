import os
import fcntl
import json
import time
import logging
import contextlib
from typing import Optional, Dict

from core.errors import JobLockedError

logger = logging.getLogger(__name__)


class JobLock:
    """
    Exclusive, non-blocking file lock for one job name.

    Two processes may run different jobs at once, but never the same job.
    The lock file holds the owner's info while the lock is held.
    """
    def __init__(self, job_name: str, lock_dir: str = "."):
        self.job_name = job_name
        self.lock_file = os.path.join(lock_dir, f"{job_name}.lock")
        self.file_handle = None

    def _open_file(self):
        if not self.file_handle:
            os.makedirs(os.path.dirname(os.path.abspath(self.lock_file)), exist_ok=True)
            self.file_handle = open(self.lock_file, "a+")

    def acquire(self, source: str = "cli", metadata: Optional[Dict] = None) -> bool:
        """
        Attempt to acquire the lock.

        Args:
            source: Identifier of the caller (e.g. 'cli')
            metadata: Additional info to store (e.g. user_id)

        Returns:
            True if lock acquired, False if another process holds it.
        """
        self._open_file()
        try:
            # Try to acquire an exclusive lock, non-blocking
            fcntl.flock(self.file_handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            # Lock is held by another process
            self.file_handle.close()
            self.file_handle = None
            return False

        self.file_handle.truncate(0)
        self.file_handle.seek(0)
        info = {
            "job": self.job_name,
            "source": source,
            "pid": os.getpid(),
            "timestamp": time.time(),
            **(metadata or {})
        }
        json.dump(info, self.file_handle)
        self.file_handle.flush()
        return True

    def release(self):
        """Release the lock and clear the owner info."""
        if self.file_handle:
            try:
                self.file_handle.truncate(0)
                self.file_handle.seek(0)
                fcntl.flock(self.file_handle, fcntl.LOCK_UN)
            except OSError as e:
                logger.error(f"Error releasing lock for {self.job_name}: {e}")
            finally:
                self.file_handle.close()
                self.file_handle = None

    def get_lock_info(self) -> Optional[Dict]:
        """
        Read information about the current lock owner.
        Returns None if file doesn't exist or is empty/corrupt.
        """
        if not os.path.exists(self.lock_file):
            return None

        try:
            with open(self.lock_file, "r") as f:
                content = f.read().strip()
                if not content:
                    return None
                return json.loads(content)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read lock info: {e}")
            return None

    @contextlib.contextmanager
    def hold(self, source: str = "cli", metadata: Optional[Dict] = None):
        """Hold the lock for the duration of the block, or raise JobLockedError."""
        if not self.acquire(source, metadata):
            owner = self.get_lock_info() or {}
            raise JobLockedError(f"Job '{self.job_name}' is already running (pid {owner.get('pid', 'unknown')})")
        try:
            yield self
        finally:
            self.release()
