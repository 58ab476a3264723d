"""VCS 后端"""

from flystart.vcs.git import GitCli, classify

__all__ = ["GitCli", "classify"]
