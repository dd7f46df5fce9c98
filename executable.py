#!/usr/bin/env python3
"""
Corneal Topography OCR - Field Extraction

Extracts structured numeric fields from photographs of corneal topography
printouts (radius, keratometry, axis, Q-value, pachymetry, AC depth, ...).

Usage:
    python executable.py --input scan.jpg --output result.json
    python executable.py --input_dir ./scans/ --output_dir ./results/ --fields k,axis
    python executable.py --input scan.jpg --regions regions.json
"""

import os
import sys
import json
import time
import argparse
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from dotenv import load_dotenv
from loguru import logger

from corneal_ocr.batch_processor import BatchProcessor
from corneal_ocr.document_processor import DocumentProcessor
from corneal_ocr.exceptions import NoTextDetected
from corneal_ocr.field_parser import SENTINEL, FieldParser
from corneal_ocr.models import BatchRequest, NormalizedRegion
from corneal_ocr.ocr_engine import AnnotationFileDetector, EasyOCRDetector, TextDetector
from corneal_ocr.region_compositor import RegionCompositor
from corneal_ocr.spatial_attributor import SpatialAttributor

IMAGE_EXTENSIONS = ['.png', '.jpg', '.jpeg', '.tiff', '.tif', '.bmp', '.webp']


class CorneaExtractor:
    """
    End-to-end pipeline for topography field extraction.

    Pipeline:
    1. Image loading (path/bytes → detector payload)
    2. Optional region compositing (several crops → one image)
    3. Text detection (external engine)
    4. Spatial attribution (fragments → per-bucket text)
    5. Field parsing (text → fixed field map)
    6. Output generation
    """

    def __init__(
        self,
        detector: Optional[TextDetector] = None,
        use_gpu: bool = True,
        batch_size: int = 16,
        max_workers: int = 4,
        gap_px: int = 10,
        left_ratio: float = 0.33,
        extended_ratio: float = 0.50
    ):
        """
        Initialize extraction pipeline.

        Args:
            detector: Text detector; a local EasyOCR engine when omitted
            use_gpu: Use GPU acceleration for the default detector
            batch_size: Detector items per batch call
            max_workers: Concurrent detector calls per batch
            gap_px: Blank pixels between regions in a composite image
            left_ratio: Width fraction of the main data column
            extended_ratio: Width fraction searched for keyword-matched fields
        """
        logger.info("Initializing Cornea Extractor...")

        self.doc_processor = DocumentProcessor()
        self.detector = detector or EasyOCRDetector(use_gpu=use_gpu)
        self.attributor = SpatialAttributor(left_ratio=left_ratio, extended_ratio=extended_ratio)
        self.field_parser = FieldParser()
        self.compositor = RegionCompositor(gap_px=gap_px, processor=self.doc_processor)
        self.batch_processor = BatchProcessor(
            self.detector,
            attributor=self.attributor,
            batch_size=batch_size,
            max_workers=max_workers
        )

        logger.info("Cornea Extractor initialized successfully")

    def extract(
        self,
        input_path: Union[str, Path],
        fields: str = '',
        image_type: str = 'full'
    ) -> Dict:
        """
        Extract fields from a single photograph.

        Args:
            input_path: Path to the image
            fields: Comma-separated field keywords; empty for all
            image_type: 'full' for whole-page captures, 'cropped' for single-column crops

        Returns:
            Result dict with the field map, or an error result
        """
        start_time = time.time()
        input_path = Path(input_path)
        doc_id = input_path.stem

        logger.info(f"Processing: {doc_id}")

        try:
            image_bytes = self.doc_processor.read_bytes(input_path)
            detection = self.detector.detect(image_bytes)
            if not len(detection):
                raise NoTextDetected(f"No text found in {input_path.name}")

            text, fragments = self.attributor.attribute_detection(detection, image_type)
            logger.debug(f"Attributed {len(fragments)}/{len(detection.fragments)} fragments")

            data = self.field_parser.extract(text, fields)
            result = self._format_result(doc_id, image_type, data, text, time.time() - start_time)

            logger.info(f"Completed {doc_id}: {result['resolved']}/{len(data)} fields, "
                        f"time={result['processing_time_sec']:.1f}s")
            return result

        except Exception as e:
            logger.error(f"Error processing {doc_id}: {e}")
            return self._error_result(doc_id, image_type, str(e), time.time() - start_time)

    def extract_batch(
        self,
        files: Sequence[Union[str, Path]],
        fields: str = '',
        image_type: str = 'full'
    ) -> List[Dict]:
        """
        Extract fields from many photographs through the batch dispatcher.

        processing_time_sec is per document: its detector call plus parsing.

        Returns:
            One result per file, in input order
        """
        files = [Path(f) for f in files]

        requests = []
        results_by_id = {}
        for index, file_path in enumerate(files):
            request_id = f"{index}-{file_path.name}"
            try:
                requests.append(BatchRequest(
                    id=request_id,
                    image_bytes=self.doc_processor.read_bytes(file_path),
                    image_type=image_type
                ))
            except (OSError, ValueError) as e:
                logger.error(f"Could not read {file_path}: {e}")
                results_by_id[request_id] = self._error_result(file_path.stem, image_type, str(e), 0.0)

        for batch_result in self.batch_processor.run(requests):
            doc_id = Path(batch_result.id.split('-', 1)[1]).stem
            if not batch_result.success:
                results_by_id[batch_result.id] = self._error_result(
                    doc_id, image_type, batch_result.error, batch_result.processing_time
                )
                continue

            parse_start = time.time()
            data = self.field_parser.extract(batch_result.full_text, fields)
            results_by_id[batch_result.id] = self._format_result(
                doc_id, image_type, data, batch_result.full_text,
                batch_result.processing_time + (time.time() - parse_start)
            )

        return [results_by_id[f"{index}-{f.name}"] for index, f in enumerate(files)]

    def extract_regions(
        self,
        input_path: Union[str, Path],
        regions: Sequence[NormalizedRegion]
    ) -> Dict:
        """
        Read caller-drawn regions with a single detector call on a composite image.

        Returns:
            Result dict with one text entry per region, in region order
        """
        start_time = time.time()
        input_path = Path(input_path)
        doc_id = input_path.stem
        region_text = {}
        error = None

        try:
            composite = self.compositor.compose(input_path, regions)
            detection = self.detector.detect(composite.image_bytes)
            if not len(detection):
                raise NoTextDetected(f"No text found in composite for {input_path.name}")
            region_text = self.attributor.attribute_by_region(detection.fragments, composite.layouts)
        except Exception as e:
            logger.error(f"Region OCR failed for {doc_id}: {e}")
            error = str(e)

        return self._format_region_result(doc_id, regions, region_text, error, time.time() - start_time)

    def extract_regions_separately(
        self,
        input_path: Union[str, Path],
        regions: Sequence[NormalizedRegion]
    ) -> Dict:
        """
        Read caller-drawn regions as individual crops sent in one batch.
        """
        start_time = time.time()
        input_path = Path(input_path)
        doc_id = input_path.stem
        region_text = {}
        error = None

        try:
            crops = self.compositor.crop_regions_png(input_path, regions)
            requests = [
                BatchRequest(id=region.id, image_bytes=png, image_type='cropped')
                for region, png in crops
            ]
            for batch_result in self.batch_processor.run(requests):
                if batch_result.success:
                    region_text[batch_result.id] = self.attributor.clean_text(batch_result.full_text)
        except Exception as e:
            logger.error(f"Region OCR failed for {doc_id}: {e}")
            error = str(e)

        return self._format_region_result(doc_id, regions, region_text, error, time.time() - start_time)

    def _format_result(
        self,
        doc_id: str,
        image_type: str,
        data: Dict[str, str],
        text: str,
        processing_time: float
    ) -> Dict:
        """Format result to the output structure."""
        return {
            "doc_id": doc_id,
            "success": True,
            "image_type": image_type,
            "fields": data,
            "resolved": sum(1 for v in data.values() if v != SENTINEL),
            "full_text": text,
            "processing_time_sec": round(processing_time, 1)
        }

    def _error_result(self, doc_id: str, image_type: str, error: str, processing_time: float) -> Dict:
        """Generate error result in the output structure."""
        return {
            "doc_id": doc_id,
            "success": False,
            "image_type": image_type,
            "error": error,
            "fields": {},
            "resolved": 0,
            "full_text": "",
            "processing_time_sec": round(processing_time, 1)
        }

    def _format_region_result(
        self,
        doc_id: str,
        regions: Sequence[NormalizedRegion],
        region_text: Dict[str, str],
        error: Optional[str],
        processing_time: float
    ) -> Dict:
        # Region text is keyed by id, not label
        result = {
            "doc_id": doc_id,
            "success": error is None,
            "regions": [
                {
                    "id": region.id,
                    "label": region.label,
                    "text": region_text.get(region.id, SENTINEL)
                }
                for region in regions
            ],
            "processing_time_sec": round(processing_time, 1)
        }
        if error is not None:
            result["error"] = error
        return result


def load_regions(path: Union[str, Path]) -> List[NormalizedRegion]:
    """Read regions from a JSON list (or {"regions": [...]})."""
    with open(path, 'r', encoding='utf-8') as f:
        payload = json.load(f)
    if isinstance(payload, dict):
        payload = payload.get('regions', [])
    return [NormalizedRegion.from_dict(item) for item in payload]


def find_images(input_dir: Union[str, Path]) -> List[Path]:
    input_dir = Path(input_dir)
    files = []
    for ext in IMAGE_EXTENSIONS:
        files.extend(input_dir.glob(f'*{ext}'))
        files.extend(input_dir.glob(f'*{ext.upper()}'))
    return sorted(set(files))


def write_json(data, path: Union[str, Path]) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Corneal Topography Field Extraction',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Single photograph:
    python executable.py --input scan.jpg --output result.json

  Batch processing, keratometry and axis only:
    python executable.py --input_dir ./scans/ --output_dir ./results/ --fields k,axis

  Pre-cropped single-column captures:
    python executable.py --input_dir ./crops/ --image_type cropped

  Caller-drawn regions (one composite detector call per image):
    python executable.py --input_dir ./scans/ --regions regions.json

  Replay stored detector output:
    python executable.py --input scan.jpg --annotations scan_annotations.json
        """
    )

    parser.add_argument('--input', '-i', type=str, help='Input image path')
    parser.add_argument('--input_dir', '-d', type=str, help='Input directory for batch')
    parser.add_argument('--output', '-o', type=str, help='Output JSON path')
    parser.add_argument('--output_dir', type=str, default='./output', help='Output directory')
    parser.add_argument('--fields', '-f', type=str, default='',
                        help='Comma-separated field keywords (rh, k, axis, q, rper, pachy, ac); empty for all')
    parser.add_argument('--image_type', type=str, default='full', choices=['full', 'cropped'],
                        help='full: whole printout photograph; cropped: single data column')
    parser.add_argument('--regions', type=str, help='JSON file of normalized regions to read')
    parser.add_argument('--separate_regions', action='store_true',
                        help='Send each region as its own crop instead of one composite')
    parser.add_argument('--annotations', type=str, help='Stored detector output to replay (single input)')

    parser.add_argument('--batch_size', type=int, default=int(os.environ.get('CORNEA_OCR_BATCH_SIZE', 16)),
                        help='Detector items per batch call')
    parser.add_argument('--max_workers', type=int, default=int(os.environ.get('CORNEA_OCR_MAX_WORKERS', 4)),
                        help='Concurrent detector calls')
    parser.add_argument('--gap', type=int, default=int(os.environ.get('CORNEA_OCR_GAP_PX', 10)),
                        help='Gap in pixels between composited regions')
    parser.add_argument('--left_ratio', type=float,
                        default=float(os.environ.get('CORNEA_OCR_LEFT_RATIO', 0.33)),
                        help='Width fraction of the main data column')
    parser.add_argument('--extended_ratio', type=float,
                        default=float(os.environ.get('CORNEA_OCR_EXTENDED_RATIO', 0.50)),
                        help='Width fraction searched for keyword-matched fields')

    parser.add_argument('--no_gpu', action='store_true', help='Disable GPU')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    return parser


def main(argv: Optional[Sequence[str]] = None):
    """Main entry point."""
    # Load environment variables from .env file if present
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging
    logger.remove()
    level = "DEBUG" if args.debug else "INFO"
    logger.add(sys.stderr, level=level, format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}")

    # Validate arguments
    if not args.input and not args.input_dir:
        parser.error("Either --input or --input_dir is required")
    if args.annotations and not args.input:
        parser.error("--annotations replays a single image; use it with --input")

    detector = AnnotationFileDetector(args.annotations) if args.annotations else None

    extractor = CorneaExtractor(
        detector=detector,
        use_gpu=not args.no_gpu,
        batch_size=args.batch_size,
        max_workers=args.max_workers,
        gap_px=args.gap,
        left_ratio=args.left_ratio,
        extended_ratio=args.extended_ratio
    )

    regions = load_regions(args.regions) if args.regions else None

    def run_one(path: Path) -> Dict:
        if regions is None:
            return extractor.extract(path, fields=args.fields, image_type=args.image_type)
        if args.separate_regions:
            return extractor.extract_regions_separately(path, regions)
        return extractor.extract_regions(path, regions)

    input_dir_path = Path(args.input_dir) if args.input_dir else None
    if args.input or (input_dir_path and input_dir_path.is_file()):
        # Single document
        input_path = Path(args.input or input_dir_path)
        result = run_one(input_path)

        output_path = args.output or f"./sample_output/{result['doc_id']}_result.json"
        write_json(result, output_path)

        print(json.dumps(result, indent=2, ensure_ascii=False))
        return

    files = find_images(input_dir_path)
    logger.info(f"Found {len(files)} images to process")

    if regions is None:
        results = extractor.extract_batch(files, fields=args.fields, image_type=args.image_type)
    else:
        results = []
        for i, file_path in enumerate(files, 1):
            logger.info(f"[{i}/{len(files)}] Processing {file_path.name}")
            results.append(run_one(file_path))

    for result in results:
        write_json(result, Path(args.output_dir) / f"{result['doc_id']}.json")

    combined_path = Path(args.output_dir) / 'all_results.json'
    write_json(results, combined_path)

    # Print summary
    successful = sum(1 for r in results if r.get('success'))
    total_docs = len(results)
    avg_time = sum(r.get('processing_time_sec', 0) for r in results) / total_docs if total_docs else 0

    print(f"\n{'='*55}")
    print(f"  BATCH PROCESSING COMPLETE")
    print(f"{'='*55}")
    print(f"  Images Processed:    {total_docs}")
    if total_docs:
        print(f"  Successful:          {successful} ({successful/total_docs*100:.0f}%)")
    else:
        print(f"  Successful:          0 (0%)")
    print(f"  Average Time:        {avg_time:.1f}s per image")
    print(f"  Results:             {combined_path}")
    print(f"{'='*55}\n")


if __name__ == "__main__":
    main()
