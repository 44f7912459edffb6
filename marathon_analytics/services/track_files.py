"""
GPS track file parsing.

Turns GPX and TCX documents into raw activity records for
activity_normalizer.normalize(). One record per GPX <trk> or TCX
<Activity>.

Track points are sampled to keep records small: the first 100 points
are kept, then every 10th point.
"""

from datetime import datetime
from math import atan2, cos, radians, sin, sqrt
from typing import Any, Dict, Iterator, List, Optional
import logging
import xml.etree.ElementTree as ET

from marathon_analytics.core.exceptions import ParseError
from marathon_analytics.core.numbers import round_half_up

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000
FULL_RESOLUTION_POINTS = 100
SAMPLE_EVERY = 10


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters."""
    dlat = radians(lat2 - lat1)
    dlon = radians(lon2 - lon1)
    a = (sin(dlat / 2) ** 2 +
         cos(radians(lat1)) * cos(radians(lat2)) * sin(dlon / 2) ** 2)
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_M * c


def _keep_point(index: int) -> bool:
    return index < FULL_RESOLUTION_POINTS or index % SAMPLE_EVERY == 0


# XML documents from devices come with and without namespaces;
# match on local tag names only.

def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _iter(element: ET.Element, name: str) -> Iterator[ET.Element]:
    for child in element.iter():
        if _local(child.tag) == name:
            yield child


def _first(element: ET.Element, name: str) -> Optional[ET.Element]:
    return next(_iter(element, name), None)


def _text(element: Optional[ET.Element], name: str) -> Optional[str]:
    if element is None:
        return None
    found = _first(element, name)
    if found is None or found.text is None:
        return None
    text = found.text.strip()
    return text or None


def _float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_document(text: str, source: str) -> ET.Element:
    if not text or not text.strip():
        raise ParseError(f"Empty {source.upper()} document", source=source)
    try:
        return ET.fromstring(text.strip())
    except ET.ParseError as e:
        raise ParseError(f"Malformed {source.upper()} document: {e}", source=source) from e


def parse_gpx(text: str) -> List[Dict[str, Any]]:
    """
    Raw activity records from a GPX document.

    Distance is the haversine sum between consecutive points, duration
    spans the first and last timestamps, elevation gain sums positive
    steps and is rounded to whole meters.
    """
    root = _parse_document(text, "gpx")
    records: List[Dict[str, Any]] = []

    for track in _iter(root, "trk"):
        distance = 0.0
        elevation_gain = 0.0
        start_time: Optional[datetime] = None
        end_time: Optional[datetime] = None
        last_lat = last_lon = last_ele = None
        track_points: List[Dict[str, Any]] = []

        for index, point in enumerate(_iter(track, "trkpt")):
            lat = _float(point.get("lat"))
            lon = _float(point.get("lon"))
            if lat is None or lon is None:
                continue
            ele = _float(_text(point, "ele"))
            time_text = _text(point, "time")
            when = _parse_time(time_text)

            if _keep_point(index):
                track_points.append({"lat": lat, "lng": lon, "elevation": ele, "time": time_text})

            if when is not None:
                if start_time is None:
                    start_time = when
                end_time = when

            if last_lat is not None:
                distance += haversine(last_lat, last_lon, lat, lon)
            if ele is not None:
                if last_ele is not None and ele > last_ele:
                    elevation_gain += ele - last_ele
                last_ele = ele
            last_lat, last_lon = lat, lon

        duration = (end_time - start_time).total_seconds() if start_time and end_time else 0.0

        record: Dict[str, Any] = {
            "date": start_time,
            "distance": distance,
            "duration": duration,
            "elevationGain": round_half_up(elevation_gain),
            "trackPoints": track_points or None,
        }
        sport = _text(track, "type")
        if sport:
            record["type"] = sport
        records.append(record)

    logger.debug(f"Parsed {len(records)} tracks from GPX")
    return records


def parse_tcx(text: str) -> List[Dict[str, Any]]:
    """
    Raw activity records from a TCX document.

    Distance and duration are the sums of lap DistanceMeters and
    TotalTimeSeconds; average heart rate is the mean of trackpoint
    samples.
    """
    root = _parse_document(text, "tcx")
    records: List[Dict[str, Any]] = []

    for activity in _iter(root, "Activity"):
        distance = 0.0
        duration = 0.0
        hr_total = 0.0
        hr_count = 0
        elevation_gain = 0.0
        start_time: Optional[str] = None
        track_points: List[Dict[str, Any]] = []
        point_index = 0

        for lap in _iter(activity, "Lap"):
            if start_time is None:
                start_time = lap.get("StartTime")
            distance += _float(_direct_text(lap, "DistanceMeters")) or 0.0
            duration += _float(_direct_text(lap, "TotalTimeSeconds")) or 0.0

            last_altitude = None
            for trackpoint in _iter(lap, "Trackpoint"):
                hr = _float(_text(_first(trackpoint, "HeartRateBpm"), "Value"))
                if hr is not None:
                    hr_total += hr
                    hr_count += 1

                altitude = _float(_text(trackpoint, "AltitudeMeters"))
                if altitude is not None:
                    if last_altitude is not None and altitude > last_altitude:
                        elevation_gain += altitude - last_altitude
                    last_altitude = altitude

                position = _first(trackpoint, "Position")
                lat = _float(_text(position, "LatitudeDegrees"))
                lng = _float(_text(position, "LongitudeDegrees"))
                if lat is None or lng is None:
                    continue
                if _keep_point(point_index):
                    track_points.append({
                        "lat": lat,
                        "lng": lng,
                        "elevation": altitude,
                        "time": _text(trackpoint, "Time"),
                    })
                point_index += 1

        record: Dict[str, Any] = {
            "date": _text(activity, "Id") or start_time,
            "distance": distance,
            "duration": duration,
            "avgHeartRate": round_half_up(hr_total / hr_count) if hr_count else None,
            "elevationGain": round_half_up(elevation_gain),
            "trackPoints": track_points or None,
        }
        sport = activity.get("Sport")
        if sport:
            record["type"] = sport
        records.append(record)

    logger.debug(f"Parsed {len(records)} activities from TCX")
    return records


def _direct_text(element: ET.Element, name: str) -> Optional[str]:
    # Lap totals only; nested trackpoints carry their own DistanceMeters
    for child in element:
        if _local(child.tag) == name and child.text:
            return child.text.strip()
    return None
