"""
Compositor - stitch ordered viewport segments into one image

Each segment's scroll offset is only a hypothesis for where it belongs.
Before drawing, a bounded window around that offset is searched for the
placement whose overlap with the previous segment matches best, comparing
a band of rows rather than a single row. The overlapping rows are drawn
once. A boundary without convincing evidence keeps the fixed-stride
placement.

The work is done by ``composite_payload``, a pure function over a
JSON-safe dict, so it can run in a worker thread or process.
"""

import asyncio
import base64
import io
import logging
from concurrent.futures import Executor, ProcessPoolExecutor
from dataclasses import asdict
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from PIL import Image

from .capture import clamp_quality
from .config import Config, config as default_config
from .errors import CompositingError
from .models import AlignmentOptions, CompositeRequest, CompositeResult, SegmentPlacement

logger = logging.getLogger(__name__)

# Overlaps thinner than this are too weak to count as evidence
MIN_OVERLAP_ROWS = 8
# Columns sampled per row when comparing bands
MAX_SAMPLED_COLUMNS = 256
# Matches this close to the best one count as the same placement
MATCH_CLUSTER_ROWS = 2
# Smallest shift tested when checking a band for repetition
MIN_PERIOD_ROWS = MATCH_CLUSTER_ROWS + 1


def _grey_rows(img: Image.Image) -> np.ndarray:
    """Greyscale float matrix of the image, columns subsampled for speed"""
    grey = np.asarray(img.convert("L"), dtype=np.float32)
    step = max(1, grey.shape[1] // MAX_SAMPLED_COLUMNS)
    return grey[:, ::step]


def _band_score(
    prev_rows: np.ndarray,
    next_rows: np.ndarray,
    overlap: int,
    band_limit: int,
    min_texture: float,
) -> Optional[float]:
    """Mean absolute difference of the band both segments would draw, or None if unscoreable"""
    prev_h = prev_rows.shape[0]
    if overlap < MIN_OVERLAP_ROWS or overlap > min(prev_h, next_rows.shape[0]):
        return None
    band = min(band_limit, overlap)
    reference = prev_rows[prev_h - band:]
    if float(reference.std()) < min_texture:
        return None
    candidate = next_rows[overlap - band:overlap]
    return float(np.abs(reference - candidate).mean())


def _is_periodic(rows: np.ndarray, band_limit: int, window: int, threshold: float) -> bool:
    """True if the trailing band of ``rows`` repeats higher up within ``window`` rows"""
    h = rows.shape[0]
    band = min(band_limit, h)
    reference = rows[h - band:]
    for shift in range(MIN_PERIOD_ROWS, window + 1):
        if shift + band > h:
            break
        earlier = rows[h - band - shift:h - shift]
        if float(np.abs(reference - earlier).mean()) <= threshold:
            return True
    return False


def find_overlap_placement(
    prev_rows: np.ndarray,
    prev_placement: int,
    next_rows: np.ndarray,
    nominal: int,
    options: AlignmentOptions,
) -> Optional[Tuple[int, float]]:
    """
    Search for where the next segment lines up with the previous one.

    Candidate placements lie within ``options.search_window`` of
    ``nominal``. For each, the trailing band of the previous segment is
    compared with the rows of the next segment that would cover the same
    part of the composite.

    The nominal placement is kept whenever it matches. A shifted placement
    is accepted only when it is the single match in the window and the
    previous segment does not repeat itself near its bottom edge; repeating
    content such as table stripes matches at
    every period and proves nothing.

    Returns:
        (placement, mean absolute difference) of the accepted match, or
        None when the nominal placement should be used unconfirmed.
    """
    if prev_rows.shape[1] != next_rows.shape[1]:
        return None

    prev_end = prev_placement + prev_rows.shape[0]
    window = max(0, int(options.search_window))
    band_limit = max(1, int(options.band_height))
    threshold = options.match_threshold

    scores = {}
    for placement in range(nominal - window, nominal + window + 1):
        score = _band_score(prev_rows, next_rows, prev_end - placement, band_limit, options.min_texture)
        if score is not None:
            scores[placement] = score

    nominal_score = scores.get(nominal)
    if nominal_score is not None and nominal_score <= threshold:
        return nominal, nominal_score

    matches = [p for p, s in scores.items() if s <= threshold]
    if not matches:
        return None

    best = min(matches, key=lambda p: (scores[p], abs(p - nominal)))
    if any(abs(p - best) > MATCH_CLUSTER_ROWS for p in matches):
        logger.debug(f"Ambiguous overlap near {nominal}: {len(matches)} matching placements")
        return None
    if _is_periodic(prev_rows, band_limit, window, threshold):
        logger.debug(f"Repeating content above boundary {nominal}, keeping fixed stride")
        return None
    return best, scores[best]


def composite_images(request: CompositeRequest) -> Tuple[Image.Image, List[SegmentPlacement]]:
    """
    Draw the segments of ``request`` into one RGB image.

    The composite is as wide as the first segment and ``target_height``
    tall (scaled by the segment/viewport pixel ratio when they differ).
    """
    segments = sorted(request.segments, key=lambda s: s.index)
    if not segments:
        raise CompositingError("No segments to composite")

    images = [Image.open(io.BytesIO(s.image)).convert("RGB") for s in segments]
    first = images[0]
    width = first.width

    ratio = 1.0
    if request.viewport_height > 0 and first.height != request.viewport_height:
        ratio = first.height / float(request.viewport_height)
    canvas_height = int(round(request.target_height * ratio))
    if canvas_height <= 0:
        raise CompositingError(f"Invalid target height: {request.target_height}")

    options = request.alignment
    if ratio != 1.0:
        options = AlignmentOptions(
            search_window=int(round(options.search_window * ratio)),
            band_height=int(round(options.band_height * ratio)),
            match_threshold=options.match_threshold,
            min_texture=options.min_texture,
        )

    canvas = Image.new("RGB", (width, canvas_height), (255, 255, 255))
    layout: List[SegmentPlacement] = []
    origin = segments[0].scroll_offset
    cursor = 0
    prev_rows = None
    prev_placement = 0

    for segment, img in zip(segments, images):
        if cursor >= canvas_height:
            break

        rows = _grey_rows(img)
        nominal = int(round((segment.scroll_offset - origin) * ratio))
        aligned = False

        if prev_rows is None:
            placement = 0
        else:
            match = find_overlap_placement(prev_rows, prev_placement, rows, nominal, options)
            if match is not None:
                placement, score = match
                aligned = True
                if placement != nominal:
                    logger.debug(
                        f"Segment {segment.index}: shifted {placement - nominal:+d}px from offset "
                        f"{nominal} (band diff {score:.2f})"
                    )
            else:
                placement = nominal
                logger.debug(f"Segment {segment.index}: no overlap match, using fixed stride at {nominal}")

        source_top = cursor - placement
        if source_top < 0:
            # Content between the segments was never captured; close the gap
            logger.debug(f"Segment {segment.index}: {-source_top}px gap above, drawing at {cursor}")
            placement = cursor
            source_top = 0

        drawn = 0
        if source_top < img.height:
            drawn = min(img.height - source_top, canvas_height - cursor)
            strip = img.crop((0, source_top, img.width, source_top + drawn))
            canvas.paste(strip, (0, cursor))
            cursor += drawn

        layout.append(SegmentPlacement(
            index=segment.index,
            placement=placement,
            source_top=source_top,
            drawn_height=drawn,
            aligned=aligned,
        ))
        prev_rows = rows
        prev_placement = placement

    if cursor < canvas_height:
        logger.warning(f"Segments cover {cursor}px of {canvas_height}px; bottom left blank")

    return canvas, layout


def encode_image(img: Image.Image, format: str, quality: Optional[int] = None) -> bytes:
    buf = io.BytesIO()
    if format == "jpeg":
        q = clamp_quality(90 if quality is None else quality)
        img.convert("RGB").save(buf, format="JPEG", quality=q)
    else:
        img.save(buf, format="PNG")
    return buf.getvalue()


def composite_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Composite a serialized CompositeRequest.

    Args:
        payload: output of ``CompositeRequest.to_payload()``

    Returns:
        {image: base64 str, format, width, height, layout: [...]}
    """
    request = CompositeRequest.from_payload(payload)
    canvas, layout = composite_images(request)
    encoded = encode_image(canvas, request.format, request.quality)
    return {
        "image": base64.b64encode(encoded).decode("ascii"),
        "format": request.format,
        "width": canvas.width,
        "height": canvas.height,
        "layout": [asdict(p) for p in layout],
    }


def result_from_payload(response: Dict[str, Any]) -> CompositeResult:
    if not isinstance(response, dict) or not response.get("image"):
        raise CompositingError("Compositor returned no image")
    return CompositeResult(
        image=base64.b64decode(response["image"]),
        format=response["format"],
        width=int(response["width"]),
        height=int(response["height"]),
        layout=[SegmentPlacement(**p) for p in response.get("layout", [])],
    )


class Compositor:
    """
    Runs ``composite_payload`` in the configured execution context.

    Every failure, including marshalling in either direction, surfaces
    as CompositingError.
    """

    def __init__(self, cfg: Optional[Config] = None, executor: Optional[Executor] = None):
        self.config = cfg or default_config
        self._executor = executor
        self._owns_executor = False

    def _get_executor(self) -> Optional[Executor]:
        if self._executor is None and self.config.compositor_executor == "process":
            self._executor = ProcessPoolExecutor(max_workers=1)
            self._owns_executor = True
        # None selects the event loop's default thread pool
        return self._executor

    async def composite(self, request: CompositeRequest) -> CompositeResult:
        count = len(request.segments)
        try:
            payload = request.to_payload()
            if self.config.compositor_executor == "inline" and self._executor is None:
                response = composite_payload(payload)
            else:
                loop = asyncio.get_running_loop()
                response = await loop.run_in_executor(self._get_executor(), composite_payload, payload)
            result = result_from_payload(response)
        except CompositingError:
            raise
        except Exception as e:
            raise CompositingError(f"Failed to composite {count} segments: {e}") from e

        logger.debug(f"Composited {count} segments into {result.width}x{result.height} {result.format}")
        return result

    def close(self) -> None:
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
            self._owns_executor = False
