"""Parse executor target names out of job URLs."""

from __future__ import annotations

from urllib.parse import unquote, urlparse

_JOB_SEGMENT = "job"


def parse_job_locator(job_url: str | None) -> str | None:
    """Return the ``/``-joined target name encoded in ``job_url``.

    ``http://host/job/team/job/project/`` resolves to ``team/project``. Reading
    starts at the first ``job`` path segment and consumes ``job/<name>`` pairs
    until a pair head is not ``job`` (for example a trailing build number).
    Returns ``None`` when the URL has no ``job`` segment or no name follows it.
    """

    if not job_url or not job_url.strip():
        return None
    path = urlparse(job_url.strip()).path
    segments = [unquote(segment) for segment in path.split("/") if segment]
    try:
        index = segments.index(_JOB_SEGMENT)
    except ValueError:
        return None

    names: list[str] = []
    while index + 1 < len(segments) and segments[index] == _JOB_SEGMENT:
        name = segments[index + 1].strip()
        if not name or "/" in name:
            return None
        names.append(name)
        index += 2
    if not names:
        return None
    return "/".join(names)
