"""Docker container access for the n8n backup CLI."""

import logging
import os
import shutil
import socket
import tarfile
import tempfile
import time
from contextlib import contextmanager
from typing import Any, Iterator, List, NamedTuple, Optional

import docker
import requests
from docker.errors import APIError, DockerException, NotFound

from n8nbackup.utils.errors import DockerError, OperationTimeoutError, create_error_suggestions

logger = logging.getLogger(__name__)

# Archives larger than this are buffered on disk instead of in memory
ARCHIVE_SPOOL_SIZE = 16 * 1024 * 1024
EXEC_POLL_INTERVAL = 0.2


def _decode(data: Optional[bytes]) -> str:
    return data.decode("utf-8", errors="replace") if data else ""


class ExecResult(NamedTuple):
    """Outcome of a command executed inside a container."""

    exit_code: int
    output: str
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ContainerManager:
    """Runs commands in and copies files to/from Docker containers.

    Every API call is bounded by ``timeout`` seconds; exceeding it raises
    :class:`OperationTimeoutError`.
    """

    def __init__(self, timeout: float = 300, client: Optional[Any] = None):
        """
        Initialize container manager.

        Args:
            timeout: Deadline for each Docker API call, in seconds
            client: Pre-built Docker client (mainly for tests)
        """
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> Any:
        """Get Docker client, creating it if necessary."""
        if self._client is None:
            try:
                client = docker.from_env(timeout=int(self.timeout))
                client.ping()
            except (DockerException, requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                raise DockerError(
                    "Cannot connect to Docker daemon. Is Docker running?",
                    details=str(e),
                    suggestions=create_error_suggestions("docker_not_running"),
                ) from e
            self._client = client

        return self._client

    @contextmanager
    def _guard(self, operation: str, container: Optional[str] = None) -> Iterator[None]:
        """Translate Docker and transport failures into tool errors."""
        try:
            yield
        except NotFound as e:
            raise DockerError(
                f"{operation} failed: container '{container}' not found",
                details=str(e),
                suggestions=create_error_suggestions("container_not_running", container=container),
            ) from e
        except (requests.exceptions.Timeout, socket.timeout) as e:
            raise OperationTimeoutError(
                f"{operation} timed out after {self.timeout}s",
                details=str(e),
                suggestions=create_error_suggestions("operation_timeout"),
            ) from e
        except (APIError, DockerException, requests.exceptions.ConnectionError) as e:
            raise DockerError(f"{operation} failed: {e}") from e

    def ping(self) -> bool:
        """Check that the Docker daemon answers."""
        with self._guard("Docker ping"):
            return bool(self.client.ping())

    def running_container_names(self) -> List[str]:
        """Names of all running containers."""
        with self._guard("Listing containers"):
            return [container.name for container in self.client.containers.list()]

    def get_uptime(self, name: str) -> str:
        """
        Get the human status string Docker reports (e.g. ``Up 3 hours``).

        Args:
            name: Container name

        Returns:
            str: Status string, or ``not running`` if no such running container
        """
        with self._guard("Reading container status", name):
            for info in self.client.api.containers(filters={"name": name}):
                if f"/{name}" in info.get("Names", []):
                    return info.get("Status", "unknown")
        return "not running"

    def exec(self, name: str, command: List[str]) -> ExecResult:
        """
        Execute a command inside a container and collect its output.

        Args:
            name: Container name
            command: Command argument vector

        Returns:
            ExecResult: Exit code, stdout and stderr
        """
        logger.debug("[%s] $ %s", name, " ".join(command))

        with self._guard(f"Running '{command[0]}'", name):
            container = self.client.containers.get(name)
            result = container.exec_run(command, demux=True)

        stdout, stderr = result.output if result.output else (None, None)
        return ExecResult(result.exit_code, _decode(stdout), _decode(stderr))

    def exec_to_file(self, name: str, command: List[str], destination: str) -> ExecResult:
        """
        Execute a command and stream its stdout into a host file.

        Args:
            name: Container name
            command: Command argument vector
            destination: Host file receiving stdout

        Returns:
            ExecResult: Exit code and captured stderr (``output`` is empty)
        """
        logger.debug("[%s] $ %s > %s", name, " ".join(command), destination)

        deadline = time.monotonic() + self.timeout
        stderr_chunks = []

        with self._guard(f"Running '{command[0]}'", name):
            api = self.client.api
            exec_id = api.exec_create(name, command, stdout=True, stderr=True)["Id"]

            with open(destination, "wb") as f:
                for stdout, stderr in api.exec_start(exec_id, stream=True, demux=True):
                    if stdout:
                        f.write(stdout)
                    if stderr:
                        stderr_chunks.append(stderr)
                    if time.monotonic() > deadline:
                        raise OperationTimeoutError(
                            f"'{command[0]}' in '{name}' exceeded {self.timeout}s",
                            suggestions=create_error_suggestions("operation_timeout"),
                        )

            exit_code = self._wait_for_exit_code(api, exec_id, deadline)

        return ExecResult(exit_code if exit_code is not None else -1, "", _decode(b"".join(stderr_chunks)))

    def _wait_for_exit_code(self, api: Any, exec_id: str, deadline: float) -> Optional[int]:
        """Docker can still report an exec as running right after its stream closes."""
        info = api.exec_inspect(exec_id)
        while info.get("Running") and time.monotonic() < deadline:
            time.sleep(EXEC_POLL_INTERVAL)
            info = api.exec_inspect(exec_id)
        return info.get("ExitCode")

    def copy_from_container(self, name: str, source: str, destination: str) -> str:
        """
        Copy a single file out of a container.

        Args:
            name: Container name
            source: Absolute file path inside the container
            destination: Host path to write

        Returns:
            str: Host destination path
        """
        with tempfile.SpooledTemporaryFile(max_size=ARCHIVE_SPOOL_SIZE) as archive:
            with self._guard(f"Copying {source} from container", name):
                container = self.client.containers.get(name)
                stream, _stat = container.get_archive(source)
                for chunk in stream:
                    archive.write(chunk)

            archive.seek(0)
            with tarfile.open(fileobj=archive) as tar:
                member = next((m for m in tar.getmembers() if m.isfile()), None)
                if member is None:
                    raise DockerError(f"{source} in '{name}' is not a regular file")
                extracted = tar.extractfile(member)
                with open(destination, "wb") as f:
                    shutil.copyfileobj(extracted, f)

        return destination

    def copy_to_container(self, name: str, source: str, destination: str) -> str:
        """
        Copy a single host file into a container.

        The tar archive is streamed to Docker from a spooled temporary file,
        so large dumps are never held in memory as a whole.

        Args:
            name: Container name
            source: Host file path
            destination: Absolute file path inside the container

        Returns:
            str: Container destination path
        """

        def _normalize(tarinfo: tarfile.TarInfo) -> tarfile.TarInfo:
            tarinfo.mode = 0o644
            tarinfo.uid = tarinfo.gid = 0
            tarinfo.uname = tarinfo.gname = ""
            return tarinfo

        with tempfile.SpooledTemporaryFile(max_size=ARCHIVE_SPOOL_SIZE) as archive:
            with tarfile.open(fileobj=archive, mode="w") as tar:
                tar.add(source, arcname=os.path.basename(destination), filter=_normalize)
            archive.seek(0)

            with self._guard(f"Copying {source} into container", name):
                container = self.client.containers.get(name)
                copied = container.put_archive(os.path.dirname(destination) or "/", archive)

        if not copied:
            raise DockerError(f"Failed to copy {source} into '{name}:{destination}'")

        return destination

    def restart_container(self, name: str, timeout: int = 10) -> None:
        """Restart a container."""
        with self._guard("Restarting container", name):
            container = self.client.containers.get(name)
            container.restart(timeout=timeout)
