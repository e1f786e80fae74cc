"""
Catalog Sources

Fetches raw TLE catalog text. A source is either an ``http(s)://`` URL,
fetched with requests, or a local file path.

Also provides the single-object lookup against CelesTrak and the collection
index loader used to list the available catalogs with their object counts.
"""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import requests

from orbit_tracker.config import config
from orbit_tracker.tle_parser import TleRecord, parse_single_tle, parse_tle_text

logger = logging.getLogger(__name__)


class FetchError(RuntimeError):
    """A catalog source could not be read."""


@dataclass(frozen=True)
class CollectionInfo:
    name: str
    file: str
    count: int


def _is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def fetch_catalog_text(source: str, timeout: float = config.REQUEST_TIMEOUT) -> str:
    """
    Read the raw text behind a catalog source.

    Args:
        source: URL or file path
        timeout: HTTP timeout in seconds

    Returns:
        Catalog text

    Raises:
        FetchError: If the source is unreachable, answers with an error status,
            or the file cannot be read
    """
    if _is_url(source):
        try:
            response = requests.get(source, timeout=timeout, headers={"Cache-Control": "no-store"})
            response.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(f"Failed to fetch {source}: {e}") from e
        return response.text

    try:
        return Path(source).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise FetchError(f"Failed to read {source}: {e}") from e


def fetch_tle_by_norad(norad_id: str, base_url: str = config.CELESTRAK_BASE,
                       timeout: float = config.REQUEST_TIMEOUT) -> Optional[TleRecord]:
    """
    Look up the current element set of one object on CelesTrak.

    Args:
        norad_id: Catalog number; non-digit characters are stripped
        base_url: CelesTrak base URL
        timeout: HTTP timeout in seconds

    Returns:
        TleRecord, or None if the lookup fails or returns no element set
    """
    clean_id = re.sub(r"[^\d]", "", str(norad_id))
    if not clean_id:
        logger.warning(f"Invalid NORAD id: {norad_id!r}")
        return None

    url = f"{base_url}/NORAD/elements/gp.php?CATNR={clean_id}&FORMAT=TLE"
    try:
        text = fetch_catalog_text(url, timeout=timeout)
    except FetchError as e:
        logger.error(f"Failed to fetch TLE for {clean_id}: {e}")
        return None

    record = parse_single_tle(text, f"SAT-{clean_id}")
    if record is None:
        logger.warning(f"No TLE found for {clean_id}")
    return record


def _collection_name(file_name: str) -> str:
    return re.sub(r"[-_]", " ", file_name.replace(".txt", ""))


def _sibling(index_source: str, file_name: str) -> str:
    if _is_url(index_source):
        return index_source.rsplit("/", 1)[0] + "/" + file_name
    return str(Path(index_source).parent / file_name)


def load_collections(index_source: str,
                     timeout: float = config.REQUEST_TIMEOUT) -> List[CollectionInfo]:
    """
    List the catalogs named by a JSON index file, with their object counts.

    Args:
        index_source: URL or path of a JSON array of catalog file names;
            each file is resolved next to the index

    Returns:
        One CollectionInfo per listed file (count 0 for files that fail to
        load), or an empty list if the index itself cannot be read
    """
    try:
        files = json.loads(fetch_catalog_text(index_source, timeout=timeout))
    except (FetchError, ValueError) as e:
        logger.error(f"Failed to load collection index {index_source}: {e}")
        return []

    if not isinstance(files, list):
        logger.error(f"Collection index {index_source} is not a list")
        return []

    collections = []
    for file_name in files:
        try:
            text = fetch_catalog_text(_sibling(index_source, file_name), timeout=timeout)
        except FetchError as e:
            logger.warning(f"Failed to load collection {file_name}: {e}")
            collections.append(CollectionInfo(_collection_name(file_name), file_name, 0))
            continue

        count = len(parse_tle_text(text))
        logger.info(f"Loaded {count} TLEs from {file_name}")
        collections.append(CollectionInfo(_collection_name(file_name), file_name, count))

    return collections
