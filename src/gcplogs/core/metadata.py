import json
import logging
import os
import shutil
import subprocess
from typing import Callable, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

# Used by Cloud Shell, Cloud Run, newer App Engine runtimes
PROJECT_ENV_VAR = "GOOGLE_CLOUD_PROJECT"
CREDENTIALS_ENV_VAR = "GOOGLE_APPLICATION_CREDENTIALS"

GCLOUD_COMMAND = "gcloud"
GCLOUD_ARGS = ("config", "get-value", "core/project")

FileReader = Callable[[str], bytes]
CommandRunner = Callable[[str, Sequence[str]], str]


def read_file(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def run_command(
    name: str, args: Sequence[str], search_path: Optional[str] = None
) -> str:
    """
    Runs an executable found on search_path and returns its stdout.
    Raises FileNotFoundError if the executable cannot be located and
    subprocess.CalledProcessError if it exits non-zero.
    """
    executable = shutil.which(name, path=search_path)
    if executable is None:
        raise FileNotFoundError(f"{name} not found on PATH")

    completed = subprocess.run(
        [executable, *args], capture_output=True, check=True
    )
    return completed.stdout.decode("utf-8", errors="replace")


class ProjectIDResolver:
    """
    Best-effort discovery of the Google Cloud project ID.
    Resolution order:
    1. GOOGLE_CLOUD_PROJECT env var
    2. project_id of the GOOGLE_APPLICATION_CREDENTIALS service account key
    3. `gcloud config get-value core/project`
    4. Fallback to ""
    """

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        file_reader: Optional[FileReader] = None,
        command_runner: Optional[CommandRunner] = None,
    ):
        self.environ = os.environ if environ is None else environ
        self._read_file = file_reader or read_file
        self._run_command = command_runner or self._run_on_path

    def resolve(self) -> str:
        # 1. Explicit override
        project_id = self.environ.get(PROJECT_ENV_VAR, "")
        if project_id:
            return project_id

        # 2. Service account key
        project_id = self._from_credentials_file()
        if project_id:
            return project_id

        # 3. Local gcloud configuration
        return self._from_gcloud()

    def _from_credentials_file(self) -> str:
        path = self.environ.get(CREDENTIALS_ENV_VAR, "")
        if not path:
            return ""

        try:
            key = json.loads(self._read_file(path))
        except (OSError, ValueError, RecursionError) as e:
            logger.debug(f"Could not read service account key {path}: {e}")
            return ""

        project_id = key.get("project_id") if isinstance(key, dict) else None
        if not isinstance(project_id, str):
            logger.debug(f"Service account key {path} has no project_id.")
            return ""
        return project_id

    def _from_gcloud(self) -> str:
        try:
            output = self._run_command(GCLOUD_COMMAND, GCLOUD_ARGS)
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"gcloud project lookup failed: {e}")
            return ""
        return output.strip()

    def _run_on_path(self, name: str, args: Sequence[str]) -> str:
        # A missing or empty PATH finds nothing
        return run_command(name, args, search_path=self.environ.get("PATH", ""))


def default_project_id() -> str:
    """Returns the project ID for the current process environment, or ""."""
    return ProjectIDResolver().resolve()
