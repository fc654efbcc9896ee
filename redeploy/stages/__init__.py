"""Pipeline stage collaborators: manifest file, git, compose."""

from redeploy.stages.compose import ComposeClient
from redeploy.stages.manifest import update_manifest
from redeploy.stages.vcs import GitClient, authenticated_remote

__all__ = ["ComposeClient", "GitClient", "authenticated_remote", "update_manifest"]
