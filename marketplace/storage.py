# marketplace/storage.py
"""
Best-effort deletion of listing images from object storage (Cloudinary Admin API)
"""
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence
from urllib.parse import unquote, urlparse

import requests

from .config import Config, get_config
from .errors import ExternalStorageError
from .utils import logger, retry

CLOUDINARY_API_URL = "https://api.cloudinary.com/v1_1"

_VERSION_RE = re.compile(r"^v\d+$")
# one chained transformation, e.g. c_fill,w_300 or e_grayscale
_TRANSFORM_RE = re.compile(r"^[a-z]{1,3}_[^,/]+(,[a-z]{1,3}_[^,/]+)*$")


@dataclass
class DeleteResult:
    deleted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class ObjectStorageGateway(Protocol):
    def delete_many(self, uris: Sequence[str]) -> DeleteResult:
        """Delete every URI independently. Never raises."""
        ...


def public_id_from_url(url: str) -> Optional[str]:
    """Extract the Cloudinary public id from a delivery URL.

    https://res.cloudinary.com/demo/image/upload/c_fill,w_300/v1712/cars/abc.jpg -> cars/abc
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if not parsed.netloc.endswith("cloudinary.com"):
        return None
    parts = [p for p in parsed.path.split("/") if p]
    if "upload" not in parts:
        return None
    rest = parts[parts.index("upload") + 1:]
    for i, part in enumerate(rest):
        if _VERSION_RE.match(part):
            rest = rest[i + 1:]
            break
    else:
        # no version: transformations lead the path, the file name never is one
        while len(rest) > 1 and _TRANSFORM_RE.match(rest[0]):
            rest = rest[1:]
    if not rest:
        return None
    last = rest[-1]
    if "." in last:
        rest[-1] = last.rsplit(".", 1)[0]
    return unquote("/".join(rest))


class CloudinaryStorageGateway:
    """Deletes images one request per URI, in parallel, each bounded by `timeout`."""

    def __init__(self, cloud_name: str, api_key: str, api_secret: str,
                 timeout: float = 10, max_workers: int = 4, retries: int = 2):
        self.cloud_name = cloud_name
        self.auth = (api_key, api_secret)
        self.timeout = timeout
        self.max_workers = max(1, max_workers)
        self.endpoint = f"{CLOUDINARY_API_URL}/{cloud_name}/resources/image/upload"
        # transport errors only; a refused delete (HTTP error status included) is final
        self._delete_with_retry = retry((requests.ConnectionError, requests.Timeout), tries=max(1, retries), delay=0.5)(self._delete_one)

    def _delete_one(self, uri: str) -> None:
        public_id = public_id_from_url(uri)
        if not public_id:
            raise ExternalStorageError(f"not a Cloudinary asset: {uri}")
        resp = requests.delete(
            self.endpoint,
            params={"public_ids[]": public_id},
            auth=self.auth,
            timeout=self.timeout,
        )
        resp.raise_for_status()
        outcome = (resp.json().get("deleted") or {}).get(public_id)
        # not_found means it is already gone
        if outcome not in ("deleted", "not_found"):
            raise ExternalStorageError(f"Cloudinary refused to delete {public_id}: {outcome}")

    def _attempt(self, uri: str) -> Optional[Exception]:
        try:
            self._delete_with_retry(uri)
        except Exception as e:
            return e
        return None

    def delete_many(self, uris: Sequence[str]) -> DeleteResult:
        result = DeleteResult()
        uris = list(uris)
        if not uris:
            return result
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(uris))) as pool:
            outcomes = list(pool.map(self._attempt, uris))
        for uri, error in zip(uris, outcomes):
            if error is None:
                result.deleted.append(uri)
            else:
                logger.warning("Image purge failed for %s: %s", uri, error)
                result.failed.append(uri)
        return result


class UnconfiguredStorageGateway:
    """Used when no storage credentials are set: nothing can be purged."""

    def delete_many(self, uris: Sequence[str]) -> DeleteResult:
        uris = list(uris)
        if uris:
            logger.warning("Object storage not configured; %d image(s) left in place", len(uris))
        return DeleteResult(failed=uris)


def build_storage_gateway(config: Optional[Config] = None) -> ObjectStorageGateway:
    cfg = config or get_config()
    if not cfg.storage_configured:
        return UnconfiguredStorageGateway()
    return CloudinaryStorageGateway(
        cfg.cloudinary_cloud_name,
        cfg.cloudinary_api_key,
        cfg.cloudinary_api_secret,
        timeout=cfg.storage_timeout,
        max_workers=cfg.storage_max_workers,
        retries=cfg.storage_retries,
    )
