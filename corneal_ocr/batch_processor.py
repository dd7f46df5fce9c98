"""
Batch Processor Module
Runs many detector calls concurrently and re-associates results by id

- Requests are chunked to the detector's per-call item limit (16)
- Each chunk runs on a thread pool; results are collected in completion order
- Every result carries the caller's correlation id and its own detection time
- A failing item never affects the rest of its batch
"""

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Sequence

from loguru import logger

from .exceptions import NoTextDetected
from .models import BatchRequest, BatchResult
from .ocr_engine import TextDetector
from .spatial_attributor import SpatialAttributor


class BatchProcessor:
    """
    Concurrent detector dispatch with id correlation.
    """

    def __init__(
        self,
        detector: TextDetector,
        attributor: Optional[SpatialAttributor] = None,
        batch_size: int = 16,
        max_workers: int = 4
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.detector = detector
        self.attributor = attributor or SpatialAttributor()
        self.batch_size = batch_size
        self.max_workers = max_workers

    def run(self, requests: Sequence[BatchRequest]) -> List[BatchResult]:
        """
        Detect and attribute every request.

        Returns:
            One BatchResult per request, in request order
        """
        ids = [r.id for r in requests]
        if len(set(ids)) != len(ids):
            raise ValueError("Batch request ids must be unique")

        results: Dict[str, BatchResult] = {}

        for start in range(0, len(requests), self.batch_size):
            batch = requests[start:start + self.batch_size]
            logger.debug(
                f"Batch {start // self.batch_size + 1}: {len(batch)} images "
                f"({start + 1}-{start + len(batch)} of {len(requests)})"
            )
            results.update(self._run_batch(batch))

        failed = sum(1 for r in results.values() if not r.success)
        logger.info(f"Batch detection finished: {len(requests) - failed}/{len(requests)} succeeded")

        return [results[request_id] for request_id in ids]

    def _run_batch(self, batch: Sequence[BatchRequest]) -> Dict[str, BatchResult]:
        results = {}
        elapsed: Dict[str, float] = {}

        def timed_detect(request: BatchRequest):
            start_time = time.time()
            try:
                return self.detector.detect(request.image_bytes)
            finally:
                elapsed[request.id] = time.time() - start_time

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(batch))) as executor:
            future_to_request = {
                executor.submit(timed_detect, request): request
                for request in batch
            }

            for future in as_completed(future_to_request):
                request = future_to_request[future]
                try:
                    detection = future.result()
                    if not len(detection):
                        raise NoTextDetected(f"No text found for {request.id}")
                    text, fragments = self.attributor.attribute_detection(detection, request.image_type)
                except NoTextDetected:
                    logger.warning(f"No text found for {request.id}")
                    results[request.id] = BatchResult(
                        id=request.id, success=False, error='No text found',
                        processing_time=elapsed.get(request.id, 0.0)
                    )
                    continue
                except Exception as e:
                    logger.error(f"Detection failed for {request.id}: {e}")
                    results[request.id] = BatchResult(
                        id=request.id, success=False, error=str(e),
                        processing_time=elapsed.get(request.id, 0.0)
                    )
                    continue

                results[request.id] = BatchResult(
                    id=request.id,
                    success=True,
                    full_text=text,
                    fragments=fragments,
                    processing_time=elapsed.get(request.id, 0.0)
                )

        return results
