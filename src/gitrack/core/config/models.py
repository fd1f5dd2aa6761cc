"""
Configuration data models for gitrack.

These models define the structure of ``.gitrack/config.yml`` and
``~/.config/gitrack/config.yml``, validated via Pydantic.
"""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Conservative subsets of what git accepts for ref and remote names
_BRANCH_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._/-]*$")
_REMOTE_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_PREFIX_RE = re.compile(r"^[a-z]+$")

DEFAULT_ID_PREFIX = "gt"


class DisplayConfig(BaseModel):
    """How issue identifiers are shown to humans."""

    id_prefix: str = Field(
        default=DEFAULT_ID_PREFIX,
        description="Prefix for display IDs, e.g. 'proj' in 'proj-a7k2'",
    )

    @field_validator("id_prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        v = v.lower()
        if not _PREFIX_RE.match(v):
            raise ValueError(f"id_prefix must contain only letters, got '{v}'")
        if v == "is":
            raise ValueError("id_prefix 'is' is reserved for internal IDs")
        return v


class SyncConfig(BaseModel):
    """
    Sync branch and transport settings.

    The branch holds issue data; the remote is where it is exchanged.
    """

    branch: str = Field(
        default="gitrack-sync",
        description="Name of the branch holding issue data",
    )
    remote: str = Field(
        default="origin",
        description="Git remote to fetch from and push to",
    )
    max_push_retries: int = Field(
        default=3,
        ge=1,
        description="Push attempts before giving up on non-fast-forward rejections",
    )
    auto_save: bool = Field(
        default=True,
        description="Copy unpushable changes to the outbox on permanent failures",
    )

    @field_validator("branch")
    @classmethod
    def validate_branch(cls, v: str) -> str:
        if not _BRANCH_RE.match(v) or ".." in v or v.endswith((".lock", "/")):
            raise ValueError(f"Invalid branch name: '{v}'")
        return v

    @field_validator("remote")
    @classmethod
    def validate_remote(cls, v: str) -> str:
        if not _REMOTE_RE.match(v):
            raise ValueError(f"Invalid remote name: '{v}'")
        return v


class IdsConfig(BaseModel):
    """Short code minting parameters."""

    min_code_length: int = Field(
        default=4,
        ge=1,
        le=16,
        description="Shortest short code ever minted",
    )


class GitrackConfig(BaseModel):
    """
    Complete gitrack configuration.

    Example:
        >>> config = GitrackConfig(display={"id_prefix": "proj"})
        >>> config.sync.branch
        'gitrack-sync'
    """

    display: DisplayConfig = Field(default_factory=DisplayConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    ids: IdsConfig = Field(default_factory=IdsConfig)

    model_config = ConfigDict(
        extra="allow",
        validate_assignment=True,
    )
