"""Read and write annotations as GeoJSON features."""

import json
import logging
import pathlib
from typing import List

import numpy as np

from . import rois
from .models import Annotation

log = logging.getLogger(__name__)


def _classification(properties):
    value = (properties or {}).get("classification")
    if isinstance(value, dict):
        return value.get("name")
    return value


def _geometry_to_rois(geometry) -> List[rois.ROI]:
    kind = geometry.get("type")
    coords = geometry.get("coordinates")
    if kind == "Point":
        return [rois.Points(points=[coords[:2]])]
    if kind == "MultiPoint":
        return [rois.Points(points=[cc[:2] for cc in coords])]
    if kind == "LineString":
        if len(coords) == 2:
            (x1, y1), (x2, y2) = (cc[:2] for cc in coords)
            return [rois.Line(x1=x1, y1=y1, x2=x2, y2=y2)]
        return [rois.Polyline(points=[cc[:2] for cc in coords])]
    if kind == "Polygon":
        return [_ring_to_polygon(coords[0])]
    if kind == "MultiPolygon":
        return [_ring_to_polygon(part[0]) for part in coords]
    raise ValueError(f"Unsupported geometry type {kind!r}")


def _ring_to_polygon(ring) -> rois.Polygon:
    ring = [cc[:2] for cc in ring]
    if len(ring) > 1 and ring[0] == ring[-1]:
        ring = ring[:-1]
    return rois.Polygon(points=ring)


def _roi_to_geometry(roi: rois.ROI) -> dict:
    coords = np.round(rois.get_roi_points(roi), 4).tolist()
    if rois.is_point(roi):
        if len(coords) == 1:
            return {"type": "Point", "coordinates": coords[0]}
        return {"type": "MultiPoint", "coordinates": coords}
    if rois.is_area(roi):
        return {"type": "Polygon", "coordinates": [coords + coords[:1]]}
    return {"type": "LineString", "coordinates": coords}


def read_annotations(path) -> List[Annotation]:
    """Load a GeoJSON FeatureCollection, Feature or list of Features."""
    path = pathlib.Path(path)
    with open(path, mode="r", encoding="utf-8") as infile:
        data = json.load(infile)

    if isinstance(data, dict):
        features = data.get("features", [data])
    else:
        features = data

    annotations = []
    for idx, feature in enumerate(features):
        geometry = feature.get("geometry")
        if not geometry:
            log.warning(f"Skipping feature {idx} in {path.name}: no geometry")
            continue
        try:
            feature_rois = _geometry_to_rois(geometry)
        except ValueError as e:
            log.warning(f"Skipping feature {idx} in {path.name}: {e}")
            continue
        classification = _classification(feature.get("properties"))
        annotations.extend(
            Annotation(roi=rr, classification=classification) for rr in feature_rois
        )
    log.info(f"Read {len(annotations)} annotations from {path}")
    return annotations


def write_annotations(path, annotations: List[Annotation]) -> None:
    features = []
    for annotation in annotations:
        properties = {"objectType": "annotation"}
        if annotation.classification is not None:
            properties["classification"] = {"name": str(annotation.classification)}
        features.append(
            {
                "type": "Feature",
                "geometry": _roi_to_geometry(annotation.roi),
                "properties": properties,
            }
        )
    path = pathlib.Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, mode="w", encoding="utf-8") as outfile:
        json.dump(
            {"type": "FeatureCollection", "features": features}, outfile, indent=2
        )
    log.info(f"Wrote {len(features)} annotations to {path}")
