"""Git Gateway.

Usage:
    from glf.git import Repository

    repo = Repository(Path("/path/to/repo"), console=console, dry_run=True)
    if not repo.branch_exists("develop"):
        repo.create_branch("develop", "master")
"""

from glf.git.repository import GitError, GitGateway, Repository

__all__ = [
    "GitError",
    "GitGateway",
    "Repository",
]
