# assignments/github.py
"""Thin client for the GitHub REST contents API."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Callable, Dict, Optional

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

USER_AGENT = "AutoGrader"


class FetchError(RuntimeError):
    """Non-404 failure talking to GitHub."""


def _headers() -> Dict[str, str]:
    headers = {"Accept": "application/vnd.github.v3+json", "User-Agent": USER_AGENT}
    token = getattr(settings, "GITHUB_TOKEN", "")
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def _get(url: str) -> requests.Response:
    return requests.get(url, headers=_headers(), timeout=settings.GITHUB_TIMEOUT_S)


def _contents_url(owner: str, repo: str, path: str) -> str:
    return f"{settings.GITHUB_API_URL}/repos/{owner}/{repo}/contents/{path.lstrip('/')}"


def fetch_file(owner: str, repo: str, path: str) -> Optional[str]:
    """Decoded text of ``path``; ``None`` when GitHub answers 404."""
    url = _contents_url(owner, repo, path)
    try:
        r = _get(url)
    except requests.RequestException as e:
        logger.error("github: fetching %s/%s:%s failed: %s", owner, repo, path, e)
        raise FetchError(f"GitHub request failed: {e}") from e

    if r.status_code == 404:
        return None
    if not r.ok:
        raise FetchError(f"GitHub API error: {r.status_code} {r.reason}")

    try:
        data = r.json()
    except ValueError as e:
        raise FetchError("GitHub API returned invalid JSON") from e
    if not isinstance(data, dict) or data.get("encoding") != "base64":
        raise FetchError("Unexpected file encoding")

    try:
        return base64.b64decode(data.get("content") or "").decode("utf-8", errors="replace")
    except (binascii.Error, ValueError) as e:
        raise FetchError(f"Could not decode file content: {e}") from e


def repo_exists(owner: str, repo: str) -> bool:
    try:
        return _get(f"{settings.GITHUB_API_URL}/repos/{owner}/{repo}").ok
    except requests.RequestException as e:
        logger.warning("github: repo check %s/%s failed: %s", owner, repo, e)
        return False


def path_exists(owner: str, repo: str, path: str) -> bool:
    try:
        r = _get(_contents_url(owner, repo, path))
    except requests.RequestException as e:
        raise FetchError(f"GitHub request failed: {e}") from e
    if r.status_code == 404:
        return False
    if not r.ok:
        raise FetchError(f"GitHub API error: {r.status_code} {r.reason}")
    return True


def repo_fetcher(owner: str, repo: str) -> Callable[[str], Optional[str]]:
    """``fetch(path)`` bound to one repository, as the autograder expects."""
    def fetch(path: str) -> Optional[str]:
        return fetch_file(owner, repo, path)
    return fetch
