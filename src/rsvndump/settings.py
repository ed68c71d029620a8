from __future__ import annotations

import os
from pathlib import Path

from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field

ENV_FILE = find_dotenv(usecwd=True)

ENV_USERNAME = "RSVNDUMP_USERNAME"
ENV_PASSWORD = "RSVNDUMP_PASSWORD"  # noqa: S105


class Settings(BaseModel):
    """Options of one dump run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    url: str = Field(..., description="URL of the repository path to dump.")
    output: Path | None = Field(default=None, description="Dump file, stdout when None.")
    log_file: str = Field(default="", description="Log file path.")
    config: str = Field(default="", description="YAML file with option defaults.")

    quiet: bool = Field(default=False, description="Only log warnings and errors.")
    verbose: bool = Field(default=False, description="Log debug information.")

    username: str = Field(default="", description="Username.")
    password: str = Field(default="", description="Password.")
    no_auth_cache: bool = Field(default=False, description="Do not cache authentication tokens.")
    non_interactive: bool = Field(default=False, description="Do no interactive prompting.")

    start: int | None = Field(default=None, ge=0, description="First revision, None to auto-detect.")
    end: int | None = Field(default=None, ge=0, description="Last revision, None for HEAD.")
    head_only: bool = Field(default=False, description="Dump the HEAD revision only.")

    use_deltas: bool = Field(default=False, description="Use deltas in dump output.")
    incremental: bool = Field(default=False, description="Dump incrementally.")
    keep_revnums: bool = Field(
        default=False,
        description="Keep the dumped revision numbers in sync with the repository.",
    )
    dump_uuid: bool = Field(default=False, description="Write the repository UUID.")
    prefix: str = Field(default="", description="Prepended verbatim to every dumped path.")

    root_is_file: bool = Field(default=False, description="The dumped URL points at a single file.")
    scratch_dir: Path | None = Field(default=None, description="Directory for buffered file content.")


def credentials_from_env(env_file: str = ENV_FILE) -> tuple[str, str]:
    """Read default credentials from the environment or a `.env` file.

    Variables set in the process environment win over the `.env` file.

    Args:
        env_file (str): path of the `.env` file, empty when there is none

    Returns:
        tuple[str, str]: username and password, empty strings when unset
    """
    values = dotenv_values(env_file) if env_file else {}
    username = os.environ.get(ENV_USERNAME) or values.get(ENV_USERNAME) or ""
    password = os.environ.get(ENV_PASSWORD) or values.get(ENV_PASSWORD) or ""
    return username, password
