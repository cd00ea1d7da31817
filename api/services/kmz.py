# SPDX-License-Identifier: Apache-2.0

"""
KMZ parsing for luminaria imports.

A KMZ file is a zip archive holding a KML document. Every Placemark with a
``lng,lat[,alt]`` coordinate becomes one point; the waypoint name is the
luminaria id.
"""

import io
import logging
import math
import zipfile
import zlib
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import List, Optional

from opentelemetry import trace

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

KMZ_EXTENSION = ".kmz"
DEFAULT_MAX_KML_BYTES = 50 * 1024 * 1024
MAX_ID_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 2000


class KmzProcessingError(ValueError):
    """Raised when a KMZ archive cannot be read."""


@dataclass
class KmlPoint:
    """A waypoint read from a KML Placemark."""
    id: str
    lat: float
    lng: float
    name: str
    description: Optional[str] = None


def is_kmz_filename(filename: Optional[str]) -> bool:
    """Check the upload name ends in ``.kmz`` (any case)."""
    return bool(filename) and filename.lower().endswith(KMZ_EXTENSION)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _first_text(element: ET.Element, name: str) -> Optional[str]:
    """Text of the first descendant called ``name``, ignoring namespaces."""
    for child in element.iter():
        if child is not element and _local_name(child.tag) == name:
            return "".join(child.itertext()).strip()
    return None


def _parse_coordinates(text: Optional[str]):
    """Return (lat, lng) from the first ``lng,lat[,alt]`` tuple, or None."""
    if not text:
        return None

    parts = text.split()[0].split(",")
    if len(parts) < 2:
        return None

    try:
        lng = float(parts[0])
        lat = float(parts[1])
    except ValueError:
        return None

    if not (math.isfinite(lat) and math.isfinite(lng)):
        return None
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return None
    return lat, lng


def waypoint_id(name: str) -> str:
    """Luminaria id for a waypoint name; ids are single URL path segments."""
    return name.replace("/", "-")


def _read_kml(data: bytes, max_kml_bytes: int) -> bytes:
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as e:
        raise KmzProcessingError("File is not a valid KMZ archive") from e

    with archive:
        names = [name for name in archive.namelist() if name.lower().endswith(".kml")]
        if not names:
            raise KmzProcessingError("No KML document found inside the KMZ archive")

        preferred = next((name for name in names if name.lower() == "doc.kml"), names[0])
        info = archive.getinfo(preferred)
        if info.file_size > max_kml_bytes:
            raise KmzProcessingError(
                f"KML document {preferred} exceeds the {max_kml_bytes} byte limit"
            )

        try:
            with archive.open(info) as entry:
                # Bounded read whatever size the header declares
                content = entry.read(max_kml_bytes + 1)
        except (zipfile.BadZipFile, RuntimeError, NotImplementedError, EOFError, zlib.error) as e:
            raise KmzProcessingError(f"Could not read {preferred}: {e}") from e

        if len(content) > max_kml_bytes:
            raise KmzProcessingError(
                f"KML document {preferred} exceeds the {max_kml_bytes} byte limit"
            )
        return content


def parse_kml(content: bytes) -> List[KmlPoint]:
    """
    Extract points from a KML document.

    Placemarks without usable coordinates, or with a name too long to be an
    id, are skipped. A Placemark with no name gets the id ``Punto_{n}`` and
    the name ``Punto {n}``, where ``n`` is its 1-based position in the
    document. A ``/`` in a name becomes ``-`` in the id.

    Raises:
        KmzProcessingError: If the XML is malformed
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise KmzProcessingError(f"Malformed KML document: {e}") from e

    points = []
    placemarks = [el for el in root.iter() if _local_name(el.tag) == "Placemark"]

    for index, placemark in enumerate(placemarks, start=1):
        coordinates = _parse_coordinates(_first_text(placemark, "coordinates"))
        if coordinates is None:
            logger.debug(f"Skipping placemark {index} without valid coordinates")
            continue

        name = _first_text(placemark, "name")
        if name and len(name) > MAX_ID_LENGTH:
            logger.debug(f"Skipping placemark {index} with a name longer than {MAX_ID_LENGTH}")
            continue

        description = _first_text(placemark, "description")
        lat, lng = coordinates

        points.append(KmlPoint(
            id=waypoint_id(name) if name else f"Punto_{index}",
            lat=lat,
            lng=lng,
            name=name or f"Punto {index}",
            description=description[:MAX_DESCRIPTION_LENGTH] if description else None
        ))

    return points


def process_kmz_file(data: bytes, max_kml_bytes: int = DEFAULT_MAX_KML_BYTES) -> List[KmlPoint]:
    """
    Read every waypoint of a KMZ archive.

    ``doc.kml`` is used when present, otherwise the first ``.kml`` entry.

    Args:
        data: Raw bytes of the uploaded file
        max_kml_bytes: Largest uncompressed KML document accepted

    Returns:
        Points in document order

    Raises:
        KmzProcessingError: If the archive or its KML cannot be read
    """
    with tracer.start_as_current_span("kmz.process_file") as span:
        span.set_attribute("kmz.size_bytes", len(data))

        points = parse_kml(_read_kml(data, max_kml_bytes))

        span.set_attribute("kmz.points", len(points))
        logger.info("KMZ file processed", extra={"points": len(points), "size_bytes": len(data)})
        return points
