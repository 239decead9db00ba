"""
Static file serving with single-page-application fallback.

A request path is mapped onto the static root.  Existing regular files are
served directly; anything else gets the root ``index.html`` so client-side
routing can take over, or 404 when there is no index either.
"""

import logging
import os
import posixpath
import stat
from email.utils import parsedate_to_datetime
from typing import Optional

from fastapi import HTTPException, Request
from starlette.datastructures import Headers
from starlette.responses import FileResponse, Response
from starlette.staticfiles import NotModifiedResponse

logger = logging.getLogger(__name__)

FALLBACK_DOCUMENT = "index.html"


class StaticResolver:
    """Resolves request paths against a static root directory."""

    def __init__(self, static_root: str):
        self.root = os.path.realpath(static_root)
        if not os.path.isdir(self.root):
            logger.warning("Static root %s is not a directory; every page will 404", self.root)

    def candidate_path(self, url_path: str) -> Optional[str]:
        """
        Map a URL path to a filesystem path confined to the static root.

        ``..`` segments are collapsed before joining, and the resolved path
        (symlinks included) must still lie under the root.

        Returns:
            Absolute path, or None if the URL cannot name anything under the root
        """
        if "\x00" in url_path:
            return None
        relative = posixpath.normpath("/" + url_path).lstrip("/")
        if relative in ("", "."):
            return self.root
        candidate = os.path.realpath(os.path.join(self.root, *relative.split("/")))
        if os.path.commonpath([self.root, candidate]) != self.root:
            return None
        return candidate

    def resolve(self, request: Request) -> Response:
        """
        Serve the file named by the request path, the fallback document, or 404.

        Raises:
            HTTPException: 404 when nothing matches, 500 on filesystem errors
        """
        candidate = self.candidate_path(request.scope["path"])
        if candidate is not None:
            st = self._stat(candidate)
            if st is not None and stat.S_ISREG(st.st_mode):
                return self._file_response(request, candidate, st)

        index_path = os.path.join(self.root, FALLBACK_DOCUMENT)
        st = self._stat(index_path)
        if st is not None and stat.S_ISREG(st.st_mode):
            return self._file_response(request, index_path, st)

        raise HTTPException(status_code=404, detail="Not Found")

    def _stat(self, path: str) -> Optional[os.stat_result]:
        """Stat ``path``; None if it does not exist."""
        try:
            return os.stat(path)
        except (FileNotFoundError, NotADirectoryError):
            return None
        except OSError as e:
            logger.error("Cannot stat %s: %s", path, e)
            raise HTTPException(status_code=500, detail="Internal Server Error")

    def _file_response(self, request: Request, path: str, st: os.stat_result) -> Response:
        if not os.access(path, os.R_OK):
            logger.error("Cannot read %s: permission denied", path)
            raise HTTPException(status_code=500, detail="Internal Server Error")

        response = FileResponse(path, stat_result=st)
        if request.method in ("GET", "HEAD") and _is_not_modified(response.headers, request.headers):
            return NotModifiedResponse(response.headers)
        return response


def _is_not_modified(response_headers: Headers, request_headers: Headers) -> bool:
    """
    Whether a conditional GET can be answered with 304.

    If-None-Match takes precedence over If-Modified-Since.
    """
    if_none_match = request_headers.get("if-none-match")
    if if_none_match is not None:
        etag = response_headers.get("etag")
        tags = [tag.strip(" W/") for tag in if_none_match.split(",")]
        return etag is not None and (etag.strip(" W/") in tags or "*" in tags)

    if_modified_since = request_headers.get("if-modified-since")
    last_modified = response_headers.get("last-modified")
    if if_modified_since and last_modified:
        try:
            return parsedate_to_datetime(if_modified_since) >= parsedate_to_datetime(last_modified)
        except (TypeError, ValueError):
            return False
    return False
