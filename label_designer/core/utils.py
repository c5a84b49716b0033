"""
core/utils.py - Portable asset paths and image source loading.

Image elements keep absolute paths in memory. On disk, a path that lives
next to (or below) the template file is stored relative to it, so a folder
of templates plus their logos can be moved or shared as a unit.
"""

import base64
import io
import logging
import os
import re
from typing import Dict, List, Optional

import requests
from PIL import Image

from .errors import RenderFailure

log = logging.getLogger(__name__)

# Element fields that hold a file path.
ASSET_FIELDS = ("src",)

_URL_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
_DATA_URL_RE = re.compile(r"^data:([^,]*?)(;base64)?,(.*)$", re.DOTALL | re.IGNORECASE)

HTTP_TIMEOUT = 10


def _is_windows_absolute(path: str) -> bool:
    """Drive letter or UNC path, even when running on a non-Windows host."""
    if not path:
        return False
    if re.match(r'^[a-zA-Z]:[\\/]', path):
        return True
    if re.match(r'^[\\/]{2}[^\\/]+[\\/]+[^\\/]+', path):
        return True
    return False


def is_url(path: str) -> bool:
    return bool(path) and bool(_URL_RE.match(path))


def make_asset_path_portable(asset_path: str, template_path: str) -> str:
    """
    Relative path if *asset_path* is inside the template's directory,
    otherwise *asset_path* unchanged (URLs and relative paths included).
    """
    if not asset_path or not template_path:
        return asset_path
    if is_url(asset_path) or not os.path.isabs(asset_path):
        return asset_path

    template_dir = os.path.dirname(os.path.abspath(template_path))
    asset_abs = os.path.abspath(asset_path)

    template_dir_norm = os.path.normcase(os.path.normpath(template_dir))
    asset_abs_norm = os.path.normcase(os.path.normpath(asset_abs))

    try:
        common = os.path.commonpath([template_dir_norm, asset_abs_norm])
    except ValueError:
        # Different drives on Windows (e.g., C: vs D:)
        return asset_path
    if common != template_dir_norm:
        return asset_path
    return os.path.relpath(asset_abs, template_dir)


def resolve_asset_path(asset_path: str, template_path: str) -> str:
    """Absolute path for a relative *asset_path*, based on the template's location."""
    if not asset_path or not template_path:
        return asset_path
    if is_url(asset_path) or os.path.isabs(asset_path) or _is_windows_absolute(asset_path):
        return asset_path

    template_dir = os.path.dirname(os.path.abspath(template_path))
    return os.path.normpath(os.path.join(template_dir, asset_path))


def make_elements_portable(elements: List[Dict], template_path: str) -> List[Dict]:
    """Copies of element dicts with asset paths made relative where possible."""
    if not template_path:
        return elements
    result = []
    for elem in elements:
        elem = dict(elem)
        for name in ASSET_FIELDS:
            if elem.get(name):
                elem[name] = make_asset_path_portable(elem[name], template_path)
        result.append(elem)
    return result


def resolve_element_paths(elements: List[Dict], template_path: str) -> List[Dict]:
    """Copies of element dicts with relative asset paths made absolute."""
    if not template_path:
        return elements
    result = []
    for elem in elements:
        elem = dict(elem)
        for name in ASSET_FIELDS:
            if elem.get(name):
                elem[name] = resolve_asset_path(elem[name], template_path)
        result.append(elem)
    return result


def is_data_url(src: str) -> bool:
    return bool(src) and src[:5].lower() == "data:"


def _decode_data_url(src: str) -> bytes:
    m = _DATA_URL_RE.match(src)
    if not m:
        raise ValueError("malformed data URL")
    _mime, is_base64, payload = m.groups()
    if is_base64:
        return base64.b64decode(payload, validate=True)
    return payload.encode("utf-8")


def _fetch_url(src: str) -> bytes:
    response = requests.get(src, timeout=HTTP_TIMEOUT)
    response.raise_for_status()
    return response.content


def load_image_source(src: str, asset_dir: Optional[str] = None) -> Image.Image:
    """
    Open an image element's source as an RGBA Pillow image.

    Accepts ``data:`` URLs, http(s) URLs, file paths and asset ids. An asset
    id is a relative path looked up under *asset_dir* (the working
    directory when unset). Any failure raises RenderFailure.
    """
    try:
        if is_data_url(src):
            stream = io.BytesIO(_decode_data_url(src))
        elif is_url(src):
            if not src.lower().startswith(("http://", "https://")):
                raise ValueError(f"unsupported URL scheme in {src.split(':', 1)[0]!r}")
            log.debug("Fetching image %s", src)
            stream = io.BytesIO(_fetch_url(src))
        else:
            path = src
            if asset_dir and not (os.path.isabs(src) or _is_windows_absolute(src)):
                path = os.path.normpath(os.path.join(asset_dir, src))
            stream = path
        with Image.open(stream) as img:
            return img.convert("RGBA")
    except (OSError, ValueError) as err:
        shown = src if len(src) <= 60 else src[:57] + "..."
        raise RenderFailure(f"Cannot load image {shown!r}: {err}") from err
