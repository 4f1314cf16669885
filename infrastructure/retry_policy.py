# ============================================================================
# COORDINATION RETRY POLICY
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Infrastructure - Driver retry decisions
# PURPOSE: Retry reads a bounded number of times, idempotent writes forever
# CREATED: 19 OCT 2026
# ============================================================================
"""
Coordination Retry Policy

Installed as the cluster-wide retry policy of the Cassandra driver, so it
applies to every statement issued by the lease, liveness and node lock
registries and by the segment repository.

The coordination layer issues few requests and tolerates latency far better
than it tolerates giving up with a lease or lock in an unknown state:
- Read timeouts on idempotent statements: retry at the same consistency,
  up to `max_read_attempts`, sleeping `read_retry_delay` between attempts
  after the first one; then rethrow.
- Write timeouts on idempotent statements: retry forever at the same
  consistency.
- Anything else (non-idempotent statements, unavailable, request errors):
  the driver's conservative default policy.

Usage:
    from infrastructure.retry_policy import CoordinationRetryPolicy

    cluster = Cluster(default_retry_policy=CoordinationRetryPolicy())
"""

import logging
import time
from typing import Optional, Tuple

from cassandra import ConsistencyLevel
from cassandra.policies import RetryPolicy, WriteType

logger = logging.getLogger(__name__)


class CasConsistencyError(RuntimeError):
    """
    A conditional (CAS) write timed out at a non-serial consistency level.

    Conditional writes are only ever prepared with SERIAL consistency, so
    this is a programming error and is never retried.
    """

    def __init__(self, consistency: Optional[int]):
        self.consistency = consistency
        name = ConsistencyLevel.value_to_name.get(consistency, consistency)
        super().__init__(f"CAS write timed out at non-serial consistency {name}")


class CoordinationRetryPolicy(RetryPolicy):
    """
    Retry policy for coordination statements.

    Idempotence comes from the statement itself (`is_idempotent`), which
    the registries set explicitly when preparing each statement.
    """

    def __init__(
        self,
        max_read_attempts: int = 10,
        read_retry_delay: float = 0.1,
        fallback: Optional[RetryPolicy] = None,
    ):
        self.max_read_attempts = max_read_attempts
        self.read_retry_delay = read_retry_delay
        # cassandra.policies.RetryPolicy implements the conservative defaults
        self.fallback = fallback or RetryPolicy()

    @staticmethod
    def _is_idempotent(query) -> bool:
        return query is not None and bool(getattr(query, "is_idempotent", False))

    def on_read_timeout(
        self,
        query,
        consistency,
        required_responses,
        received_responses,
        data_retrieved,
        retry_num,
    ) -> Tuple[int, Optional[int]]:
        if not self._is_idempotent(query):
            return self.fallback.on_read_timeout(
                query, consistency, required_responses,
                received_responses, data_retrieved, retry_num,
            )

        if retry_num >= self.max_read_attempts:
            logger.warning(
                f"Read timed out after {retry_num} retries at "
                f"{ConsistencyLevel.value_to_name.get(consistency)}, giving up"
            )
            return self.RETHROW, None

        if retry_num > 0 and self.read_retry_delay > 0:
            time.sleep(self.read_retry_delay)
        return self.RETRY, consistency

    def on_write_timeout(
        self,
        query,
        consistency,
        write_type,
        required_responses,
        received_responses,
        retry_num,
    ) -> Tuple[int, Optional[int]]:
        if write_type == WriteType.CAS and consistency != ConsistencyLevel.SERIAL:
            raise CasConsistencyError(consistency)

        if not self._is_idempotent(query):
            return self.fallback.on_write_timeout(
                query, consistency, write_type,
                required_responses, received_responses, retry_num,
            )

        if retry_num and retry_num % 10 == 0:
            logger.warning(f"Write still timing out after {retry_num} retries, retrying")
        return self.RETRY, consistency

    def on_unavailable(
        self,
        query,
        consistency,
        required_replicas,
        alive_replicas,
        retry_num,
    ) -> Tuple[int, Optional[int]]:
        # The first unavailable event counts as attempt zero
        normalized = 0 if retry_num == 1 else retry_num
        return self.fallback.on_unavailable(
            query, consistency, required_replicas, alive_replicas, normalized,
        )

    def on_request_error(self, query, consistency, error, retry_num) -> Tuple[int, Optional[int]]:
        return self.fallback.on_request_error(query, consistency, error, retry_num)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["CoordinationRetryPolicy", "CasConsistencyError"]
