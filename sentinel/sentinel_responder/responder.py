"""
Sentinel Responder - Container Remediation

Stops and then starts a container through the Docker Engine API and measures how long the
cycle took. Every failure is reported as a RemediationOutcome; nothing raises past
remediate().
"""

import asyncio
import time
from collections.abc import Callable
from datetime import UTC, datetime

import docker
from docker.errors import DockerException, NotFound
from requests.exceptions import RequestException

from sentinel.events import RemediationOutcome, RemediationStatus
from sentinel.logger import SentinelLogger
from sentinel.platform_utils import get_docker_host


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ContainerResponder:
    """
    Executes the stop-then-start remediation cycle for a container.

    The Docker SDK is blocking, so each call runs in a worker thread; a slow restart of
    one container never stalls the event loop that polls the others.
    """

    def __init__(
        self,
        docker_client: docker.DockerClient,
        stop_timeout: int = 10,
        call_timeout: float | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """
        Args:
            docker_client: Connected Docker client
            stop_timeout: Seconds Docker waits for the container to exit before killing it
            call_timeout: Optional bound in seconds on each stop/start call
            clock: Source of the timestamps used to measure the cycle
        """
        self.docker_client = docker_client
        self.stop_timeout = stop_timeout
        self.call_timeout = call_timeout or None
        self.clock = clock
        self.logger = SentinelLogger.get_logger("responder")

    @classmethod
    def connect(
        cls,
        retry_max: int = 3,
        retry_delay: float = 1.0,
        **kwargs,
    ) -> "ContainerResponder":
        """
        Connect to the Docker daemon with exponential backoff and build a responder.

        Args:
            retry_max: Connection attempts
            retry_delay: Initial backoff delay in seconds
            **kwargs: Passed through to the constructor

        Returns:
            ContainerResponder bound to the connected client

        Raises:
            DockerException: If the daemon cannot be reached after retry_max attempts
        """
        logger = SentinelLogger.get_logger("responder")
        docker_host = get_docker_host()
        retry_delays = [retry_delay * (2**i) for i in range(retry_max)]
        last_error: Exception | None = None

        for attempt in range(retry_max):
            try:
                client = docker.from_env()
                client.ping()
                logger.info(f"Docker client initialized: {docker_host}")
                return cls(client, **kwargs)
            except (DockerException, RequestException) as e:
                last_error = e
                if attempt < retry_max - 1:
                    wait_time = retry_delays[attempt]
                    logger.warning(
                        f"Failed to connect to Docker (attempt {attempt + 1}/{retry_max}). "
                        f"Retrying in {wait_time}s... Error: {e!s}"
                    )
                    time.sleep(wait_time)

        msg = f"Failed to connect to Docker after {retry_max} attempts. Last error: {last_error!s}"
        raise DockerException(msg) from last_error

    def _stop(self, unit_id: str) -> None:
        container = self.docker_client.containers.get(unit_id)
        container.stop(timeout=self.stop_timeout)

    def _start(self, unit_id: str) -> None:
        container = self.docker_client.containers.get(unit_id)
        container.start()

    async def _call(self, func: Callable[[str], None], unit_id: str) -> str | None:
        """
        Run one blocking Docker call off the event loop.

        Returns:
            None on success, otherwise a description of the failure
        """
        try:
            await asyncio.wait_for(asyncio.to_thread(func, unit_id), timeout=self.call_timeout)
            return None
        except TimeoutError:
            return f"timed out after {self.call_timeout}s"
        except NotFound:
            return f"container not found: {unit_id}"
        except DockerException as e:
            return f"Docker API error: {e}"
        except RequestException as e:
            return f"Docker daemon unreachable: {e}"
        except Exception as e:
            self.logger.error(f"Unexpected error calling Docker for {unit_id}: {e}", exc_info=True)
            return f"unexpected error: {e}"

    async def remediate(self, unit_id: str) -> RemediationOutcome:
        """
        Stop and then start a container.

        Start is only attempted when stop succeeded. The duration runs from just before
        the stop call is issued until the start call completes.

        Args:
            unit_id: Container id or name

        Returns:
            RemediationOutcome with status restarted, stop_failed or start_failed
        """
        started_at = self.clock()
        self.logger.info(f"Stopping container: {unit_id}")

        error = await self._call(self._stop, unit_id)
        if error is not None:
            self.logger.error(f"Failed to stop container {unit_id}: {error}")
            return RemediationOutcome(
                unit_id=unit_id,
                status=RemediationStatus.STOP_FAILED,
                started_at=started_at,
                error=error,
            )
        self.logger.info(f"Container stopped: {unit_id}")

        error = await self._call(self._start, unit_id)
        finished_at = self.clock()
        if error is not None:
            self.logger.error(f"Failed to start container {unit_id}: {error}")
            return RemediationOutcome(
                unit_id=unit_id,
                status=RemediationStatus.START_FAILED,
                started_at=started_at,
                finished_at=finished_at,
                error=error,
            )

        outcome = RemediationOutcome(
            unit_id=unit_id,
            status=RemediationStatus.RESTARTED,
            started_at=started_at,
            finished_at=finished_at,
        )
        self.logger.info(f"Container started: {unit_id}")
        self.logger.info(f"Time taken from stop to start: {outcome.duration_ms} ms")
        return outcome

    def close(self) -> None:
        try:
            self.docker_client.close()
        except DockerException as e:
            self.logger.warning(f"Error closing Docker client: {e}")
