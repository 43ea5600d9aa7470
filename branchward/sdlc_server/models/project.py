"""Project identifiers.

Projects are owned by the hosting platform; the server only ever holds a
reference of the form ``{MODE}-{gitlab id}``, e.g. ``PROD-1234``.
"""

from __future__ import annotations

from dataclasses import dataclass

from branchward.sdlc_server.models.enums import GitLabMode

_DELIMITER = "-"


@dataclass(frozen=True)
class ProjectId:
    mode: GitLabMode
    gitlab_id: int

    def __str__(self) -> str:
        return f"{self.mode.value}{_DELIMITER}{self.gitlab_id}"

    @classmethod
    def parse(cls, project_id: str) -> ProjectId:
        """Parse ``MODE-123``.  Raises ``ValueError`` on any malformed input."""
        mode_part, sep, id_part = project_id.partition(_DELIMITER)
        # ASCII digits only: no sign, underscore or whitespace
        if not sep or not (id_part.isascii() and id_part.isdigit()):
            msg = f"Invalid project id: {project_id}"
            raise ValueError(msg)
        try:
            mode = GitLabMode(mode_part.upper())
        except ValueError:
            msg = f"Invalid project id: {project_id}"
            raise ValueError(msg) from None
        return cls(mode=mode, gitlab_id=int(id_part))
